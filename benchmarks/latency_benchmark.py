import asyncio
import time
from datetime import timedelta

import numpy as np

from loginshield.common.config.policy import SecurityPolicy
from loginshield.data.schemas.common import UserContext, utc_now
from loginshield.data.schemas.fingerprint import ClientAttributes, RequestMetadata, ScreenInfo
from loginshield.governance.alerts.sink import LoggingAlertSink
from loginshield.orchestration import LoginRequest, LoginShieldEngine
from loginshield.storage.memory import InMemoryDocumentStore

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def create_login(user_index=0):
    return LoginRequest(
        request=RequestMetadata(
            ip=f"203.0.113.{user_index % 250 + 1}",
            headers={"User-Agent": USER_AGENT, "CF-IPCountry": "US", "Accept-Language": "en-US"},
        ),
        client=ClientAttributes(
            screen=ScreenInfo(width=1920, height=1080, color_depth=24),
            timezone="America/New_York",
            platform="Win32",
            canvas="bench-canvas",
        ),
        user=UserContext(
            user_id=f"user_bench_{user_index:03d}",
            email=f"bench{user_index}@example.com",
            role="driver",
        ),
    )


async def seed_rules(engine):
    await engine.rules.create({"name": "Block sanctioned", "kind": "deny", "priority": 100,
                               "conditions": {"countries": ["KP", "IR"]}})
    await engine.rules.create({"name": "Watch EU", "kind": "alert", "priority": 10,
                               "conditions": {"countries": ["DE", "FR"]}})


def create_engine():
    engine = LoginShieldEngine(InMemoryDocumentStore(), SecurityPolicy(), LoggingAlertSink())
    asyncio.run(seed_rules(engine))
    return engine


async def _timed_runs(engine, login, iterations):
    latencies = []
    now = utc_now()

    # Warmup
    await engine.orchestrator.evaluate(login, now=now)

    for i in range(iterations):
        start_time = time.perf_counter()
        await engine.orchestrator.evaluate(login, now=now + timedelta(seconds=i))
        end_time = time.perf_counter()

        latencies.append((end_time - start_time) * 1000)

        if (i + 1) % 20 == 0:
            print(f"  Completed {i + 1}/{iterations} iterations")
    return latencies


def run_latency_benchmark(iterations=100):
    engine = create_engine()
    login = create_login()

    print(f"--- Latency Benchmark ({iterations} iterations) ---")

    latencies = asyncio.run(_timed_runs(engine, login, iterations))

    print("\nLatency Results:")
    print(f"  Mean:   {np.mean(latencies):.2f} ms")
    print(f"  Median: {np.median(latencies):.2f} ms")
    print(f"  P95:    {np.percentile(latencies, 95):.2f} ms")
    print(f"  P99:    {np.percentile(latencies, 99):.2f} ms")
    print("-" * 40)
    return latencies


async def _concurrent_runs(engine, total_requests, concurrent_users):
    semaphore = asyncio.Semaphore(concurrent_users)

    async def one(i):
        async with semaphore:
            await engine.orchestrator.evaluate(create_login(i % concurrent_users))

    await asyncio.gather(*(one(i) for i in range(total_requests)))


def run_throughput_benchmark(total_requests=500, concurrent_users=10):
    engine = create_engine()

    print(f"\n--- Throughput Benchmark ({total_requests} requests, {concurrent_users} concurrent) ---")

    start_time = time.perf_counter()
    asyncio.run(_concurrent_runs(engine, total_requests, concurrent_users))
    end_time = time.perf_counter()
    total_time = end_time - start_time

    throughput = total_requests / total_time

    print("\nThroughput Results:")
    print(f"  Total Time: {total_time:.2f} s")
    print(f"  Throughput: {throughput:.2f} requests/sec")
    print("-" * 40)
    return throughput


if __name__ == "__main__":
    run_latency_benchmark()
    run_throughput_benchmark()
