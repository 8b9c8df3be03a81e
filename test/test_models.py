import pytest
import pydantic_core

from dcb_event_store import (
    AppendCondition,
    AppendConditionError,
    DomainEvent,
    EventCriteria,
    SequencedEvent,
)


def test_criteria_accumulation_returns_new_value():
    base = EventCriteria()
    with_types = base.for_types("A")
    with_both = with_types.for_tags("x", "y")

    assert base.types == () and base.tags == ()
    assert with_types.types == ("A",) and with_types.tags == ()
    assert with_both.types == ("A",)
    assert with_both.tags == ("x", "y")


def test_criteria_deduplicates_entries():
    criteria = EventCriteria().for_types("A", "A").for_types("B", "A").for_tags("x").for_tags("x")
    assert criteria.types == ("A", "B")
    assert criteria.tags == ("x",)
    assert EventCriteria(types=["A", "A"], tags=["t", "t"]) == EventCriteria(types=["A"], tags=["t"])


def test_criteria_is_immutable():
    criteria = EventCriteria(types=["A"])
    with pytest.raises(pydantic_core.ValidationError):
        criteria.types = ("B",)


def test_empty_criteria_matches_everything():
    criteria = EventCriteria()
    assert criteria.is_empty
    assert criteria.matches(DomainEvent(id="1", type="Anything"))
    assert criteria.matches(DomainEvent(id="2", type="Other", tags={"a", "b"}))


def test_tags_match_is_superset_test():
    criteria = EventCriteria().for_tags("x", "y")
    assert not criteria.matches(DomainEvent(id="1", type="T", tags={"x"}))
    assert not criteria.matches(DomainEvent(id="2", type="T", tags={"y", "z"}))
    assert criteria.matches(DomainEvent(id="3", type="T", tags={"x", "y"}))
    assert criteria.matches(DomainEvent(id="4", type="T", tags={"x", "y", "z"}))


def test_types_and_tags_combine_with_and():
    criteria = EventCriteria().for_types("A", "B").for_tags("x")
    assert criteria.matches(DomainEvent(id="1", type="B", tags={"x"}))
    assert not criteria.matches(DomainEvent(id="2", type="C", tags={"x"}))
    assert not criteria.matches(DomainEvent(id="3", type="A"))


def test_event_requires_id_and_type():
    with pytest.raises(pydantic_core.ValidationError):
        DomainEvent(id="", type="T")
    with pytest.raises(pydantic_core.ValidationError):
        DomainEvent(id="1", type="")


def test_event_tags_are_a_set():
    event = DomainEvent(id="1", type="T", tags=["x", "y", "x"])
    assert event.tags == frozenset({"x", "y"})


def test_sequenced_event_position_starts_at_one():
    with pytest.raises(pydantic_core.ValidationError):
        SequencedEvent(id="1", type="T", position=0)
    assert SequencedEvent(id="1", type="T", position=1).position == 1


def test_empty_append_condition():
    condition = AppendCondition.empty()
    assert condition.is_empty
    assert condition.after == 0


def test_append_condition_with_empty_criteria_is_empty():
    condition = AppendCondition.for_criteria(EventCriteria(), after=42)
    assert condition.is_empty
    assert condition == AppendCondition.empty()


def test_append_condition_keeps_criteria_and_cursor():
    criteria = EventCriteria().for_types("T")
    condition = AppendCondition.for_criteria(criteria, after=7)
    assert not condition.is_empty
    assert condition.criteria == criteria
    assert condition.after == 7


def test_append_condition_rejects_negative_cursor():
    with pytest.raises(pydantic_core.ValidationError):
        AppendCondition(criteria=EventCriteria(types=["T"]), after=-1)


def test_append_condition_error_describes_attempt():
    condition = AppendCondition.for_criteria(EventCriteria().for_types("T").for_tags("user:1"), after=3)
    events = [DomainEvent(id="e-2", type="T")]
    error = AppendConditionError(condition, events)

    assert error.condition is condition
    assert error.events == events
    message = str(error)
    assert "e-2" in message
    assert "user:1" in message
    assert "after=3" in message


def test_payload_must_be_json_serializable():
    with pytest.raises(pydantic_core.ValidationError, match="payload of event 'evt-1' is not JSON serializable"):
        DomainEvent(id="evt-1", type="T", payload={1, 2})
    assert DomainEvent(id="evt-2", type="T", payload={"nested": [1, "two", None]}).payload == {"nested": [1, "two", None]}


def test_id_key_folds_case_beyond_ascii():
    assert DomainEvent(id="Événement", type="T").id_key == DomainEvent(id="événement", type="T").id_key
    assert DomainEvent(id="STRASSE", type="T").id_key == DomainEvent(id="straße", type="T").id_key
    assert DomainEvent(id="a", type="T").id_key != DomainEvent(id="b", type="T").id_key
