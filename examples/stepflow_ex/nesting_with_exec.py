#!/usr/bin/env python3
"""Run a sub-flow from inside a step with ``ctx.exec``."""

import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from dotenv import load_dotenv

from stepflow import callback_from_future, flow

load_dotenv()
logging.basicConfig(level=os.getenv("STEPFLOW_LOG_LEVEL", "WARNING"))

pool = ThreadPoolExecutor(max_workers=1)


def read_file(ctx, path):
    future = pool.submit(Path(path).read_text, encoding="utf-8")
    callback_from_future(future, ctx.async_())


sub_flow = flow("subFlow")(read_file)


def start(ctx, path):
    ctx.exec(sub_flow, path, ctx.async_())


def end(ctx, data):
    if ctx.err:
        raise ctx.err
    print(data)
    print("done")
    ctx.next()


main_flow = flow("mainFlow")(start, end)

if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("FILE1", "file1")
    try:
        main_flow.run(path, timeout=10)
    finally:
        pool.shutdown()
