"""Local deterministic agent for invoker and CLI integration tests.

Reads the prompt from stdin and reacts to ``[[echo-agent:<directive>]]`` markers
found in it:

* ``sleep=<seconds>`` - sleep before answering
* ``exit=<code>`` - write the prompt head to stderr and exit with ``code``
* ``preamble`` - wrap a valid document in conversational text
* ``fenced`` - wrap a valid document in a code fence
* ``fail-first`` - answer with a summary until the prompt carries retry feedback
* ``markdown`` / ``json`` - answer with a markdown or JSON artifact
* ``say=<text>`` - answer with ``text`` verbatim
"""

from __future__ import annotations

import argparse
import json
import re
import sys
import time

_DIRECTIVE = re.compile(r"\[\[echo-agent:([a-z\-]+)(?:=([^\]]*))?\]\]")
_RETRY_MARKER = "Your previous response was invalid"


def main(argv: list[str] | None = None) -> int:
    """Answer the prompt on stdin according to its directives."""

    parser = argparse.ArgumentParser()
    parser.add_argument("-p", action="store_true", dest="print_mode")
    parser.add_argument("--version", action="version", version="echo-agent 1.0")
    parser.add_argument("--model", default="")
    parser.add_argument("--tools", default="")
    parser.add_argument("--append-system-prompt", default="")
    parser.add_argument("--add-dir", action="append", default=[])
    args, _ = parser.parse_known_args(argv)

    prompt = sys.stdin.read()
    directives = {name: value for name, value in _DIRECTIVE.findall(prompt)}

    if "sleep" in directives:
        time.sleep(float(directives["sleep"] or "60"))

    if "exit" in directives:
        print(f"echo-agent failure: {prompt[:80]}", file=sys.stderr)
        return int(directives["exit"] or "1")

    if "say" in directives:
        sys.stdout.write(directives["say"])
        return 0

    if "fail-first" in directives and _RETRY_MARKER not in prompt:
        sys.stdout.write("## Summary\n\nThe design system includes buttons and cards.\n")
        return 0

    document = _render_document(directives=directives, args=args)
    if "preamble" in directives:
        document = f"Sure thing, one moment.\n\n{document}\n\nLet me know about changes."
    elif "fenced" in directives:
        document = f"```html\n{document}\n```"
    sys.stdout.write(document)
    return 0


def _render_document(*, directives: dict[str, str], args: argparse.Namespace) -> str:
    if "json" in directives:
        return json.dumps(
            {"model": args.model, "tools": args.tools, "add_dirs": args.add_dir},
            sort_keys=True,
        )
    if "markdown" in directives:
        return f"# Echo report\n\nmodel: {args.model}\n"
    dirs = ",".join(args.add_dir)
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        f"<head><title>echo</title><!-- model={args.model} tools={args.tools} "
        f"dirs={dirs} --></head>\n"
        "<body><h1>echo</h1></body>\n"
        "</html>"
    )


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
