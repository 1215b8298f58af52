#!/usr/bin/env python3
# %% [markdown]
# # Flow Engine: Interactive Demo
#
# This notebook walks through every feature of the callback-style flow
# engine.  Each cell is self-contained, run them top to bottom.
#
# Only dependency beyond `stepflow` itself: `nest_asyncio`, for the
# `run_async` cell inside Jupyter.

# %% [markdown]
# ## Setup & Imports

# %%
import asyncio
import threading

# Jupyter already runs an asyncio event loop.  asyncio.run() below would
# fail without nest_asyncio patching the loop to allow nested calls.
import nest_asyncio

nest_asyncio.apply()

from stepflow import (
    BatchSizeError,
    as_,
    callback_from_future,
    flow,
    parallel_each,
)


def later(delay, callback, *args):
    """Fire an error-first *callback* from a timer thread."""
    timer = threading.Timer(delay, callback, args=args)
    timer.daemon = True
    timer.start()


# %% [markdown]
# ---
# ## 1. Sequential steps with `next`
#
# Every step receives its context first, then whatever the previous step
# passed to `ctx.next(...)`.  `ctx.data` is shared by all steps.

# %%
def tokenize(ctx, text):
    ctx.data = {"source": text}
    ctx.next(text.split())


def upper(ctx, tokens):
    ctx.next([t.upper() for t in tokens])


def show(ctx, tokens):
    print(f"  {ctx.data['source']!r} → {tokens}")
    ctx.next(tokens)


words = flow("words")(tokenize, upper, show)
print(words.run("hello flow engine"))

# %% [markdown]
# ---
# ## 2. `end`: jump straight to the terminal step

# %%
def validate(ctx, text):
    if not text:
        ctx.end("empty input")
        return
    ctx.next(text)


def terminal(ctx, *args):
    print(f"  terminal: err={ctx.err!r} args={args}")
    ctx.next(*args)


checked = flow(validate, upper, terminal)
checked.run("")

# %% [markdown]
# ---
# ## 3. `async_`: wait for every callback, keep declaration order
#
# The second timer fires first, yet results arrive in the order the
# callbacks were created.

# %%
def fetch_two(ctx):
    later(0.05, ctx.async_(as_(1)), None, "slow")
    later(0.01, ctx.async_(as_(1)), None, "fast")


result = flow(fetch_two, lambda ctx, a, b: ctx.next(a, b)).run(timeout=2)
print(f"  args={result.args}")

# %% [markdown]
# ---
# ## 4. Batch size: cap async callbacks per step

# %%
def too_many(ctx):
    for _ in range(3):
        ctx.async_()


try:
    flow(2)(too_many)()
except BatchSizeError as e:
    print(f"  Caught BatchSizeError: {e}")

# %% [markdown]
# ---
# ## 5. Nested flows and `exec`

# %%
double = flow("double")(lambda ctx, n: ctx.next(n * 2))
print(flow(lambda ctx: ctx.next(5), double, double).run().args)


def use_exec(ctx):
    ctx.exec(double, 21, ctx.async_())


print(flow(use_exec, lambda ctx, n: ctx.next(n)).run().args)

# %% [markdown]
# ---
# ## 6. `parallel_each`: fork/join with ordered results

# %%
def begin(ctx, *items):
    ctx.fork(*items)


def slow_len(wctx, item):
    later(0.01 * (3 - wctx.index), wctx.callback, None, len(item))


def collect(ctx, err, results):
    ctx.next(results)


print(parallel_each(begin, slow_len, collect).run("a", "bb", "ccc", timeout=2).args)

# %% [markdown]
# ---
# ## 7. `run_async`: await a flow from asyncio code

# %%
async def square(n):
    await asyncio.sleep(0.01)
    return n * n


def squares(ctx, *ns):
    loop = asyncio.get_running_loop()
    for n in ns:
        callback_from_future(loop.create_task(square(n)), ctx.async_())


async def main():
    return await flow(squares, lambda ctx, *r: ctx.next(*r)).run_async(2, 3, 4)


print(asyncio.run(main()).args)
