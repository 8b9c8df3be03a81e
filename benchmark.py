import argparse
import asyncio
import os
import tempfile
import time

from dcb_event_store import AppendCondition, DomainEvent, EventCriteria, open_event_store


async def benchmark(num_events: int, batch_size: int):
    print(f"Benchmarking with {num_events} events in batches of {batch_size}...")

    async def run_mode(config: dict):
        async with open_event_store(config) as store:
            # --- Append benchmark ---
            # Each batch is guarded by a condition on its own tag, so every
            # append pays for the rejection check as well as the inserts.
            start_append = time.perf_counter()
            position = 0
            for start in range(0, num_events, batch_size):
                batch = [
                    DomainEvent(id=f"bench-{i}", type="Bench", payload={"i": i}, tags={f"batch:{start}", f"n:{i % 10}"})
                    for i in range(start, min(start + batch_size, num_events))
                ]
                condition = AppendCondition.for_criteria(EventCriteria().for_tags(f"batch:{start}"), after=position)
                positions = await store.append(batch, condition)
                position = positions[-1]
            append_time = time.perf_counter() - start_append

            # --- Read benchmark ---
            start_read = time.perf_counter()
            all_events = await store.events()
            tagged = await store.events(EventCriteria().for_types("Bench").for_tags("n:3"))
            read_time = time.perf_counter() - start_read

            assert len(all_events) == num_events
            assert all(e.payload["i"] % 10 == 3 for e in tagged)

        return append_time, read_time

    mem_append_time, mem_read_time = await run_mode({"url": "sqlite://"})

    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "bench.db")
        file_append_time, file_read_time = await run_mode({"url": f"sqlite:///{db_path}"})

    def throughput(seconds: float) -> float:
        return num_events / seconds if seconds > 0 else 0

    print(f"\n--- Results for {num_events} events ---")
    print(f"In-memory SQLite  - Append: {mem_append_time:.4f}s ({throughput(mem_append_time):,.0f} events/s), Read: {mem_read_time:.4f}s")
    print(f"File-based SQLite - Append: {file_append_time:.4f}s ({throughput(file_append_time):,.0f} events/s), Read: {file_read_time:.4f}s")


async def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--num-events", type=int, default=1000)
    parser.add_argument("--batch-size", type=int, default=50)
    args = parser.parse_args()
    await benchmark(args.num_events, args.batch_size)


if __name__ == "__main__":
    asyncio.run(main())
