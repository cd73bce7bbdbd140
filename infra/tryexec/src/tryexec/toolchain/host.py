"""
Execution host for compiled workspaces.

The Python toolchain starts this file in a fresh interpreter::

    python -I -u host.py <run_dir> <control_fd>

It loads the marshalled code object and manifest from ``run_dir``, writes
``ready`` on the control pipe once setup is done, runs the user's code, and
finally writes a JSON report (exception description, return value) on the
same pipe.  Standard output and error belong to the user's program.

Only the standard library may be imported here.
"""

import asyncio
import importlib.util
import inspect
import json
import marshal
import os
import sys
import traceback

READY = "ready"
RETURN_VALUE_NAME = "__return_value__"


def _load_prelude():
    path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prelude.py")
    spec = importlib.util.spec_from_file_location("_tryexec_prelude", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module.PRELUDE


def _describe(exc):
    return "".join(traceback.format_exception_only(type(exc), exc)).strip()


def _await(value):
    if inspect.iscoroutine(value):
        return asyncio.run(value)
    return value


def _execute(manifest, code, namespace):
    # Code compiled with top-level await evaluates to a coroutine.
    _await(eval(code, namespace))
    entry_point = manifest.get("entry_point")
    if entry_point:
        return _await(namespace[entry_point]())
    return namespace.get(RETURN_VALUE_NAME)


def main(argv):
    run_dir, control_fd = argv[1], int(argv[2])
    with os.fdopen(control_fd, "w", encoding="utf-8") as control:
        with open(os.path.join(run_dir, ".manifest.json"), encoding="utf-8") as f:
            manifest = json.load(f)
        with open(os.path.join(run_dir, ".program.bin"), "rb") as f:
            code = marshal.load(f)

        namespace = {"__name__": manifest["module_name"], "__file__": manifest["filename"]}
        namespace.update(_load_prelude())
        sys.path.insert(0, run_dir)
        sys.argv = [manifest["filename"]]

        control.write(READY + "\n")
        control.flush()

        report = {}
        try:
            value = _execute(manifest, code, namespace)
            if value is not None:
                report["return_value"] = repr(value)
        except SystemExit as exc:
            if exc.code not in (None, 0):
                report["exception"] = _describe(exc)
        except BaseException as exc:
            report["exception"] = _describe(exc)

        sys.stdout.flush()
        sys.stderr.flush()
        control.write(json.dumps(report) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
