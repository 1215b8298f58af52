#!/usr/bin/env python3
"""Measure several files in parallel; results come back in fork order."""

import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from dotenv import load_dotenv

from stepflow import callback_from_future, flow, parallel_each

load_dotenv()
logging.basicConfig(level=os.getenv("STEPFLOW_LOG_LEVEL", "WARNING"))

pool = ThreadPoolExecutor(max_workers=4)


def begin(ctx, *names):
    ctx.fork(*names)


def measure(wctx, name):
    def on_read(err, data=None):
        if err is not None:
            wctx.end(err)
            return
        wctx.join(len(data))

    callback_from_future(pool.submit(Path(name).read_bytes), on_read)


def report(ctx, err, results):
    if err:
        raise err
    print(results)
    ctx.next(results)


lengths = flow(parallel_each(begin, measure, report))

if __name__ == "__main__":
    names = sys.argv[1:] or ["LICENSE", "README.md"]
    try:
        lengths.run(*names, timeout=10)
    finally:
        pool.shutdown()
