"""
Minimal stdio language server used by the tests.

Answers initialize and shutdown, exits on exit, and publishes one ERROR
diagnostic for every line containing "bad" when a document is saved with its
text included. Every message received is appended as a JSON line to the
file given with --record.

Options:
    --record FILE          Append received messages to FILE
    --fail-initialize      Answer initialize with an error
    --hang-initialize      Never answer initialize
    --crash-on-initialize  Exit without answering initialize
    --ignore-shutdown      Never answer shutdown and ignore exit
"""
import argparse
import json
import sys


def read_message(stream):
    headers = {}
    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.decode("utf-8").strip()
        if not line:
            if headers:
                break
            continue
        key, _, value = line.partition(":")
        headers[key.strip().lower()] = value.strip()
    body = stream.read(int(headers.get("content-length", 0)))
    return json.loads(body.decode("utf-8"))


def write_message(message):
    body = json.dumps(message).encode("utf-8")
    sys.stdout.buffer.write(f"Content-Length: {len(body)}\r\n\r\n".encode("utf-8") + body)
    sys.stdout.buffer.flush()


def lint(uri, text):
    diagnostics = []
    for number, line in enumerate(text.splitlines()):
        column = line.find("bad")
        if column >= 0:
            diagnostics.append({
                "range": {
                    "start": {"line": number, "character": column},
                    "end": {"line": number, "character": column + 3},
                },
                "severity": 1,
                "source": "lunalint",
                "message": "bad identifier",
            })
    write_message({
        "jsonrpc": "2.0",
        "method": "textDocument/publishDiagnostics",
        "params": {"uri": uri, "diagnostics": diagnostics},
    })


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--record")
    parser.add_argument("--fail-initialize", action="store_true")
    parser.add_argument("--hang-initialize", action="store_true")
    parser.add_argument("--crash-on-initialize", action="store_true")
    parser.add_argument("--ignore-shutdown", action="store_true")
    args = parser.parse_args()

    texts = {}
    stdin = sys.stdin.buffer
    while True:
        message = read_message(stdin)
        if message is None:
            return 0
        if args.record:
            with open(args.record, "a", encoding="utf-8") as f:
                f.write(json.dumps(message) + "\n")

        method = message.get("method")
        params = message.get("params") or {}

        if method == "initialize":
            if args.crash_on_initialize:
                return 3
            if args.hang_initialize:
                continue
            if args.fail_initialize:
                write_message({
                    "jsonrpc": "2.0",
                    "id": message["id"],
                    "error": {"code": -32603, "message": "initialize refused"},
                })
                continue
            write_message({
                "jsonrpc": "2.0",
                "id": message["id"],
                "result": {
                    "capabilities": {"textDocumentSync": {"openClose": True, "change": 1, "save": {"includeText": True}}},
                    "serverInfo": {"name": "fake-lunalintd", "version": "0.0.0"},
                },
            })
        elif method == "initialized":
            write_message({
                "jsonrpc": "2.0",
                "method": "window/logMessage",
                "params": {"type": 3, "message": "fake server ready"},
            })
        elif method == "shutdown":
            if args.ignore_shutdown:
                continue
            write_message({"jsonrpc": "2.0", "id": message["id"], "result": None})
        elif method == "exit":
            if args.ignore_shutdown:
                continue
            return 0
        elif method == "textDocument/didOpen":
            document = params["textDocument"]
            texts[document["uri"]] = document["text"]
        elif method == "textDocument/didChange":
            uri = params["textDocument"]["uri"]
            texts[uri] = params["contentChanges"][-1]["text"]
        elif method == "textDocument/didSave":
            uri = params["textDocument"]["uri"]
            # Like lunalintd, lint only saves that carry the text
            if "text" in params:
                texts[uri] = params["text"]
                lint(uri, texts[uri])
        elif "id" in message:
            write_message({
                "jsonrpc": "2.0",
                "id": message["id"],
                "error": {"code": -32601, "message": f"Unhandled method {method}"},
            })


if __name__ == "__main__":
    sys.exit(main())
