"""
Server-owned thread pool for blocking SQLite calls.

Tool handlers are coroutines, but sqlite3 is blocking. Every database call
goes through ``run_in_thread`` so a slow query never stalls the event loop
serving other sessions. The pool is owned by the server rather than borrowed
from ``asyncio.to_thread`` so it survives the default executor being shut
down during transport teardown.
"""

import asyncio
import concurrent.futures
import functools

_db_executor = concurrent.futures.ThreadPoolExecutor(
    max_workers=4, thread_name_prefix="factory-db"
)


async def run_in_thread(func, *args, **kwargs):
    """Run *func(*args, **kwargs)* in the server-owned thread pool."""
    loop = asyncio.get_running_loop()
    call = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(_db_executor, call)
