#!/usr/bin/env python3
"""
手动重发合并退货通知

用法:
    python scripts/resend_return_notifications.py ORDER_ID [ORDER_ID ...] [--only-failed]
"""
import argparse
import asyncio
import sys
from pathlib import Path

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from ff_core.config import get_settings
from ff_core.container import EngineContainer
from ff_core.utils.errors import FulfilFlowException
from ff_core.utils.logger import setup_logging


async def resend(order_ids, only_failed: bool) -> int:
    """逐个订单重发，返回失败数量"""
    settings = get_settings()
    container = EngineContainer(settings)
    failures = 0

    try:
        for order_id in order_ids:
            try:
                result = await container.consolidator.resend_notification(order_id, only_failed=only_failed)
            except FulfilFlowException as e:
                print(f"✗ {order_id}: [{e.code}] {e.detail}")
                failures += 1
                continue

            if not result["notifications"]:
                print(f"- {order_id}: nothing to resend")
            for item in result["notifications"]:
                if item["notification_sent"]:
                    print(f"✓ {order_id}: {item['tracking_number']} ({len(item['return_ids'])} returns)")
                else:
                    print(f"✗ {order_id}: {item['tracking_number']} - {item['notification_error']}")
                    failures += 1
    finally:
        await container.shutdown()

    return failures


def main() -> int:
    parser = argparse.ArgumentParser(description="Resend consolidated return notifications")
    parser.add_argument("order_ids", nargs="+", help="Order ids whose approved returns should be re-notified")
    parser.add_argument(
        "--only-failed",
        action="store_true",
        help="Only resend notifications that previously failed"
    )
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(log_level=settings.log_level, log_format="text")

    failures = asyncio.run(resend(args.order_ids, args.only_failed))
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
