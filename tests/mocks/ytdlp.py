"""
A stand-in yt-dlp executable. Tests run it as a real child process through
``[sys.executable, <script>]``; its behaviour is picked by the source URL.
"""

from __future__ import annotations

import sys
from pathlib import Path

ARTIFACT_SIZE = 64 * 1024

SCRIPT = r'''
import json, os, sys, time

args = sys.argv[1:]
url = args[0]
out = args[args.index("--output") + 1]

log = os.environ.get("FAKE_YTDLP_LOG")
if log:
    with open(log, "a") as fh:
        fh.write(json.dumps(args) + "\n")

if "fail" in url:
    sys.stderr.write("ERROR: [youtube] abc123: Video unavailable\n")
    sys.exit(1)
if "slow" in url:
    time.sleep(30)
if "empty" in url:
    open(out, "wb").close()
    sys.exit(0)
if "nofile" in url:
    sys.exit(0)

with open(out, "wb") as fh:
    fh.write(b"\x00" * SIZE)
'''.replace("SIZE", str(ARTIFACT_SIZE))


def install(directory: Path) -> list[str]:
    script = Path(directory) / "fake_ytdlp.py"
    script.write_text(SCRIPT)
    return [sys.executable, str(script)]
