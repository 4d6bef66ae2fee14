"""
Interpreter-side bootstrap.

Runs inside the bridged interpreter (passed with ``python -c``), so it must
only use the standard library. Usage:

    python -c "<this file>" module|script|code <target>

stdout is reserved for protocol messages; anything the loaded code prints
is redirected to stderr.
"""

import importlib
import importlib.util
import inspect
import json
import os
import sys
import traceback
import types


def debug(*args):
    print(*args, file=sys.stderr, flush=True)


def load_target(kind, target):
    """Load the module whose attributes are exposed as methods."""
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    if kind == "code":
        module = types.ModuleType("bridge_module")
        exec(compile(target, "<bridge>", "exec"), module.__dict__)
        return module

    if kind == "script":
        path = os.path.abspath(target)
        directory = os.path.dirname(path)
        if directory not in sys.path:
            sys.path.insert(0, directory)
        name = os.path.splitext(os.path.basename(path))[0]
        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None or spec.loader is None:
            raise ImportError("Cannot load script %s" % path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        spec.loader.exec_module(module)
        return module

    return importlib.import_module(target)


def make_emitter(stream):
    def emit(message):
        stream.write(json.dumps(message) + "\n")
        stream.flush()
    return emit


def handle_request(module, request, emit):
    """Run one request and emit its yield / completion messages."""
    call_id = request["id"]
    result = getattr(module, request["method"])(*request.get("args", []))
    if inspect.isgenerator(result):
        for item in result:
            emit({"id": call_id, "yield": item})
    else:
        emit({"id": call_id, "yield": result})
    emit({"id": call_id})


def serve(module, lines, emit):
    """Process requests in arrival order until ``lines`` is exhausted."""
    for line in lines:
        line = line.strip()
        if not line:
            continue
        request = None
        try:
            request = json.loads(line)
            handle_request(module, request, emit)
        except Exception:
            trace = traceback.format_exc()
            if isinstance(request, dict) and "id" in request:
                emit({"id": request["id"], "error": trace})
            debug("Failed bridge method")
            debug(trace)


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    if len(argv) != 2:
        debug("usage: worker module|script|code <target>")
        return 2
    kind, target = argv

    protocol_out = sys.stdout
    sys.stdout = sys.stderr
    emit = make_emitter(protocol_out)

    module = load_target(kind, target)
    emit({"id": 0, "ready": True})

    try:
        serve(module, sys.stdin, emit)
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
