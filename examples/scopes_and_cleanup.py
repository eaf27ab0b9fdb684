"""
Scopes: acquire several resources, release them in reverse order.

Run: python examples/scopes_and_cleanup.py
"""
import os
import threading

from deferpy import context, defer, lock, resource, temp_dir, open_file


@resource
def report_file(ctx, directory: str, name: str):
    # the caller's scope owns the file handle
    f = open_file(ctx, os.path.join(directory, name), "w")
    ctx.defer(print, f"[report] closing {name}")
    return f


def main() -> None:
    guard = threading.Lock()
    with context():
        workdir = temp_dir()
        lock(guard)
        defer(print, "[main] scope exiting")
        out = report_file(workdir, "summary.txt")
        out.write("all good\n")
        print(f"[main] wrote {out.name}, lock held: {guard.locked()}")
    print(f"[main] workdir removed: {not os.path.exists(workdir)}, lock held: {guard.locked()}")


if __name__ == "__main__":
    main()
