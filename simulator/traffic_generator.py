"""
TrafficWatch - Synthetic Traffic Generator.

Produces mock connection summaries for demos and tests, and can push
them at a running TrafficWatch instance over HTTP.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from trafficwatch.detection.models import Protocol, TrafficSample

logger = logging.getLogger("trafficwatch.simulator")

_NORMAL_PORTS = [80, 443, 8080, 3000]
_ATTACK_PORTS = [22, 23, 3389, 445]
_PROTOCOLS = [Protocol.TCP, Protocol.UDP, Protocol.ICMP]


class MockTrafficSource:
    """
    Random traffic mix of benign clients and a small pool of attackers.

    Attackers come from 192.168.1.100-109 and send tiny or jumbo packets
    at 100-499 req/s, half of them against administrative ports. Benign
    clients come from 10.0.0.0/16 at 5-84 req/s with 300-1499 byte
    packets on web ports.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        attack_ratio: float = 0.3,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rng = random.Random(seed)
        self.attack_ratio = attack_ratio
        self.clock = clock

    def __call__(self) -> TrafficSample:
        return self.generate()

    def generate(self, attack: Optional[bool] = None) -> TrafficSample:
        rng = self.rng
        is_attack = rng.random() < self.attack_ratio if attack is None else attack

        if is_attack:
            source_ip = f"192.168.1.{rng.randint(100, 109)}"
            port = (
                rng.choice(_ATTACK_PORTS) if rng.random() > 0.5
                else rng.choice(_NORMAL_PORTS)
            )
            packet_size = (
                rng.randint(20, 99) if rng.random() > 0.5
                else rng.randint(1500, 4499)
            )
            request_rate = rng.randint(100, 499)
        else:
            source_ip = f"10.0.{rng.randint(0, 254)}.{rng.randint(0, 254)}"
            port = rng.choice(_NORMAL_PORTS)
            packet_size = rng.randint(300, 1499)
            request_rate = rng.randint(5, 84)

        return TrafficSample(
            timestamp=self.clock(),
            source_ip=source_ip,
            destination_ip=f"172.16.0.{rng.randint(1, 50)}",
            port=port,
            protocol=rng.choice(_PROTOCOLS),
            packet_size=packet_size,
            request_rate=float(request_rate),
        )


@dataclass
class SimulatorConfig:
    """Configuration for a simulation run against a live instance."""
    target_url: str = "http://localhost:8000"
    duration_sec: int = 30
    rps: int = 20
    attack_ratio: float = 0.3
    seed: Optional[int] = None


@dataclass
class SimulatorReport:
    """Results from a simulation run."""
    duration_sec: float
    total_sent: int = 0
    suspicious: int = 0
    alerts: int = 0
    rejected: int = 0
    errors: int = 0

    @property
    def suspicious_rate(self) -> float:
        return self.suspicious / max(1, self.total_sent) * 100

    def summary(self) -> str:
        return (
            f"\n{'='*45}\n"
            f"   Simulation Report\n"
            f"{'='*45}\n"
            f"  Duration:        {self.duration_sec:.1f}s\n"
            f"  Samples Sent:    {self.total_sent}\n"
            f"  Suspicious:      {self.suspicious}\n"
            f"  Alerts Raised:   {self.alerts}\n"
            f"  Rejected:        {self.rejected}\n"
            f"  Errors:          {self.errors}\n"
            f"  Suspicious Rate: {self.suspicious_rate:.1f}%\n"
            f"{'='*45}\n"
        )


class TrafficSimulator:
    """Posts synthetic samples to ``POST /api/traffic`` on a running instance."""

    def __init__(self, config: SimulatorConfig) -> None:
        self.config = config
        self.source = MockTrafficSource(seed=config.seed, attack_ratio=config.attack_ratio)
        self.report = SimulatorReport(duration_sec=config.duration_sec)

    def _record_response(self, status_code: int, body: dict) -> None:
        self.report.total_sent += 1
        if status_code == 200:
            if body.get("record", {}).get("is_suspicious"):
                self.report.suspicious += 1
            if body.get("alert"):
                self.report.alerts += 1
        elif status_code in (409, 422):
            self.report.rejected += 1
        else:
            self.report.errors += 1

    async def run(self, client: Optional[httpx.AsyncClient] = None) -> SimulatorReport:
        logger.info(
            "Simulating %ds of traffic at %d samples/s against %s",
            self.config.duration_sec, self.config.rps, self.config.target_url,
        )
        own_client = client is None
        client = client or httpx.AsyncClient(base_url=self.config.target_url, timeout=5)
        try:
            end_time = time.time() + self.config.duration_sec
            while time.time() < end_time:
                for _ in range(self.config.rps):
                    await self._send(client)
                await asyncio.sleep(1)
        finally:
            if own_client:
                await client.aclose()
        return self.report

    async def _send(self, client: httpx.AsyncClient) -> None:
        payload = self.source.generate().to_dict()
        try:
            resp = await client.post("/api/traffic", json=payload)
            self._record_response(resp.status_code, resp.json())
        except (httpx.HTTPError, ValueError):
            self.report.total_sent += 1
            self.report.errors += 1


async def run_simulation(
    target: str = "http://localhost:8000",
    duration: int = 30,
    rps: int = 20,
    attack_ratio: float = 0.3,
    seed: Optional[int] = None,
) -> SimulatorReport:
    """Convenience function to run a simulation."""
    config = SimulatorConfig(
        target_url=target,
        duration_sec=duration,
        rps=rps,
        attack_ratio=attack_ratio,
        seed=seed,
    )
    report = await TrafficSimulator(config).run()
    print(report.summary())
    return report


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="TrafficWatch Traffic Simulator")
    parser.add_argument("--target", default="http://localhost:8000")
    parser.add_argument("--duration", type=int, default=30)
    parser.add_argument("--rps", type=int, default=20)
    parser.add_argument("--attack-ratio", type=float, default=0.3)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    asyncio.run(run_simulation(
        target=args.target,
        duration=args.duration,
        rps=args.rps,
        attack_ratio=args.attack_ratio,
        seed=args.seed,
    ))
