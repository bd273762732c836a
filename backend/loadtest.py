"""
Load testing tool for the collaboration server

Connects many simulated participants spread over rooms, has them edit and
move cursors for a while, then prints and saves a metrics summary.

    python loadtest.py --users 20 --room 5 --duration 30
"""
import argparse
import asyncio
import json
import logging
import os
import random
import time
from datetime import datetime
from typing import List

from collab.client import CollabClient

logger = logging.getLogger(__name__)

CODE_SAMPLES = [
    'console.log("Hello World");',
    'function test() { return 42; }',
    'const x = 100;\nconst y = 200;\nconsole.log(x + y);',
    'for (let i = 0; i < 10; i++) {\n    console.log(i);\n}',
    'print(sum(range(10)))',
]


class LoadTestMetrics:
    def __init__(self):
        self.connections_successful = 0
        self.connections_failed = 0
        self.messages_sent = 0
        self.messages_received = 0
        self.join_latencies_ms: List[float] = []
        self.errors: List[str] = []
        self.started_at = time.monotonic()

    def to_dict(self) -> dict:
        latencies = self.join_latencies_ms
        return {
            "timestamp": datetime.now().isoformat(),
            "durationSeconds": round(time.monotonic() - self.started_at, 2),
            "connectionsSuccessful": self.connections_successful,
            "connectionsFailed": self.connections_failed,
            "messagesSent": self.messages_sent,
            "messagesReceived": self.messages_received,
            "averageJoinLatencyMs": round(sum(latencies) / len(latencies), 2) if latencies else None,
            "maxJoinLatencyMs": round(max(latencies), 2) if latencies else None,
            "errors": self.errors[:50],
        }


async def simulate_user(
    index: int,
    url: str,
    users_per_room: int,
    duration: float,
    metrics: LoadTestMetrics,
    code_interval: float = 2.0,
    cursor_interval: float = 0.5
) -> None:
    client = CollabClient(url, display_name=f"user-{index}")
    joined = asyncio.Event()

    def on_joined(data):
        if data.get("connectionId") == client.connection_id:
            joined.set()

    client.on("joined", on_joined)

    try:
        await client.connect()
        metrics.connections_successful += 1
    except Exception as e:
        metrics.connections_failed += 1
        metrics.errors.append(f"user-{index} connect: {e}")
        return

    try:
        sent_at = time.monotonic()
        await client.join(f"test-room-{index // users_per_room}")
        await asyncio.wait_for(joined.wait(), timeout=10)
        metrics.join_latencies_ms.append((time.monotonic() - sent_at) * 1000)

        deadline = time.monotonic() + duration
        next_code = time.monotonic()
        while time.monotonic() < deadline:
            if time.monotonic() >= next_code:
                await client.change_code(random.choice(CODE_SAMPLES))
                next_code = time.monotonic() + code_interval
            await client.move_cursor(random.randint(0, 5), random.randint(0, 20))
            await asyncio.sleep(cursor_interval)
    except Exception as e:
        metrics.errors.append(f"user-{index}: {e}")
    finally:
        await client.close()
        metrics.messages_sent += client.messages_sent
        metrics.messages_received += client.messages_received


async def run_load_test(url: str, users: int, users_per_room: int, duration: float) -> LoadTestMetrics:
    metrics = LoadTestMetrics()
    await asyncio.gather(*[
        simulate_user(i, url, users_per_room, duration, metrics)
        for i in range(users)
    ])
    return metrics


def save_results(summary: dict, output_dir: str) -> str:
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, f"result-{datetime.now().strftime('%Y%m%d-%H%M%S')}.json")
    with open(path, 'w') as f:
        json.dump(summary, f, indent=2)
    return path


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load test the collaboration server")
    parser.add_argument("--url", default=os.getenv("SERVER_URL", "ws://localhost:5000/ws"))
    parser.add_argument("--users", type=int, default=int(os.getenv("TOTAL_USERS", 10)))
    parser.add_argument("--room", type=int, default=int(os.getenv("USERS_PER_ROOM", 5)),
                        help="Users per room")
    parser.add_argument("--duration", type=float, default=float(os.getenv("TEST_DURATION", 30)),
                        help="Seconds of simulated activity")
    parser.add_argument("--output", default="load-test-results")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    logger.info(f"Load testing {args.url}: {args.users} users, {args.room} per room, {args.duration}s")
    metrics = asyncio.run(run_load_test(args.url, args.users, max(1, args.room), args.duration))
    summary = metrics.to_dict()

    print(json.dumps(summary, indent=2))
    logger.info(f"Results saved to {save_results(summary, args.output)}")
    return 0 if metrics.connections_failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
