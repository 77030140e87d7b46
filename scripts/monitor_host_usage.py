"""
Host Usage Monitor
Runs the host usage sampler and logs every published snapshot
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
import time

from config.settings import DEFAULT_CONFIG_PATH, create_sampler, load_config
from metrics.host_usage import SystemResourceUsage
from metrics.scheduler import HostUsageScheduler

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def log_usage(usage: SystemResourceUsage) -> None:
    logger.info(
        f"cpu {usage.cpu_used:.1f}/{usage.cpu_limit:.0f} "
        f"mem {usage.memory_used:.0f}/{usage.memory_limit:.0f}MB "
        f"in {usage.network_in_used:.1f}/{usage.network_in_limit:.0f}kbps "
        f"out {usage.network_out_used:.1f}/{usage.network_out_limit:.0f}kbps"
    )


def main():
    parser = argparse.ArgumentParser(description="Host usage sampler")
    parser.add_argument(
        "--config", type=str, default=DEFAULT_CONFIG_PATH, help="Path to YAML config"
    )
    parser.add_argument(
        "--interval", type=float, help="Override the check interval in minutes"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Sample twice one second apart, print JSON and exit",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    sampler = create_sampler(config.host_usage)

    if args.once:
        sampler.calculate_host_usage()
        time.sleep(1)
        print(json.dumps(sampler.calculate_host_usage().to_dict(), indent=2))
        return

    interval = args.interval or config.host_usage.check_interval_minutes
    scheduler = HostUsageScheduler(
        sampler,
        check_interval_minutes=interval,
        read_timeout_seconds=config.host_usage.read_timeout_seconds,
    )
    scheduler.subscribe(log_usage)

    def signal_handler(sig, frame):
        print("\n\nShutting down...")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    asyncio.run(scheduler.start())


if __name__ == "__main__":
    main()
