#!/usr/bin/env python3
"""
分段传输服务

读取配置、检查目标端依赖并启动传输线程，然后从标准输入逐行读取分段器的命令：

    <first_segment>,<last_segment>,<stream_end:0|1>,<profile_name>
    mr_index
    quit

输入结束或读到 quit 时，等待之前的命令全部处理完再退出。

Usage:
    python transfer_service.py config/config.json
    python transfer_service.py config/config.json --multirate
"""

import argparse
import logging
import sys
from typing import Iterable, Optional

from hstransfer import ConfigError, TransferWorker, load_config, setup_logging, validate_config
from hstransfer.commands import MULTIRATE_INDEX, QUIT
from hstransfer.config import CONFIG_FILE


def feed_commands(worker: TransferWorker, lines: Iterable[str]) -> int:
    """把输入的每一行推入传输队列，返回推入的命令数"""
    count = 0
    for line in lines:
        value = line.strip()
        if not value:
            continue
        if value == QUIT:
            break
        worker.submit(value)
        count += 1
    return count


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description='HLS 分段传输服务')
    parser.add_argument('config', nargs='?', default=CONFIG_FILE, help='JSON 配置文件路径')
    parser.add_argument('--multirate', action='store_true', help='启动后先上传多码率主播放列表')
    args = parser.parse_args(argv)

    try:
        app_config = load_config(args.config)
        log = setup_logging(app_config)
        validate_config(app_config)
        worker = TransferWorker.from_config(app_config, logger=log)
    except ConfigError as exc:
        logging.getLogger("hstransfer").error("Configuration error: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    worker.start()
    if args.multirate:
        worker.submit(MULTIRATE_INDEX)

    try:
        count = feed_commands(worker, sys.stdin)
        log.info("Read %d commands from input", count)
    except KeyboardInterrupt:
        log.warning("Interrupted, finishing queued transfers")
    finally:
        worker.stop()
    return 0


if __name__ == '__main__':
    sys.exit(main())
