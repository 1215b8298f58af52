#!/usr/bin/env python3
"""Read two files concurrently and join their contents in the next step.

Paths come from the command line, or from ``FILE1`` / ``FILE2`` in the
environment (a ``.env`` file is honoured).
"""

import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from dotenv import load_dotenv

from stepflow import as_, callback_from_future, flow

load_dotenv()
logging.basicConfig(level=os.getenv("STEPFLOW_LOG_LEVEL", "WARNING"))

pool = ThreadPoolExecutor(max_workers=2)


def read_file(path, callback):
    """Error-first async reader: ``callback(err, text)``."""
    callback_from_future(pool.submit(Path(path).read_text, encoding="utf-8"), callback)


def read_files(ctx, file1, file2):
    read_file(file1, ctx.async_(as_(1)))
    read_file(file2, ctx.async_(as_(1)))


def end(ctx, data1, data2):
    if ctx.err:
        raise ctx.err
    print(data1 + data2)
    print("done")
    ctx.next()


my_flow = flow("myFlow")(read_files, end)

if __name__ == "__main__":
    paths = sys.argv[1:3] or [os.getenv("FILE1", "file1"), os.getenv("FILE2", "file2")]
    try:
        my_flow.run(*paths, timeout=10)
    finally:
        pool.shutdown()
