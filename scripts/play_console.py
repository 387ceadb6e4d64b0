"""Play a story in the terminal.

Usage:
  python scripts/play_console.py [story]

Commands at the prompt:
  <object id>   click a visible object
  (enter)       acknowledge the current line
  <n>           pick option n of the current choice
  q             quit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from a checkout without installing.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from vignette.config import Settings  # noqa: E402
from vignette.game import GameInstance  # noqa: E402
from vignette.presentation import PresentationCommand, QueuedPresentation  # noqa: E402
from vignette.stories.catalog import STORIES, get_story  # noqa: E402


def _print_command(cmd: PresentationCommand) -> None:
    p = cmd.payload
    if cmd.type == "mount_objects":
        labels = ", ".join(f"{o['key']} ({o['label'] or '?'})" for o in p["objects"]) or "(nothing)"
        print(f"  objects: {labels}")
    elif cmd.type == "show_line":
        who = f"{p['speaker']}: " if p.get("speaker") else ""
        print(f"  > {who}{p['text']}  [enter]")
    elif cmd.type == "show_choice":
        print(f"  ? {p['prompt']}")
        for idx, opt in enumerate(p["options"], start=1):
            print(f"    {idx}. {opt['text']}")
    elif cmd.type == "flash":
        print(f"  * the screen flashes {p['color']} *")


async def play(story: str) -> None:
    spec = get_story(story)
    presentation = QueuedPresentation()
    presentation.subscribe(_print_command)
    async with GameInstance(presentation) as game:
        start_scene = spec.build(game)
        game.subscribe(lambda e: print(f"-- {e.payload['scene_id']} --") if e.type == "SCENE_ENTERED" else None)
        await game.start(start_scene)

        tasks: set[asyncio.Task] = set()
        while True:
            raw = (await asyncio.to_thread(input, "")).strip()
            if raw == "q":
                break
            if presentation.waiting_for == "line":
                presentation.acknowledge()
            elif presentation.waiting_for == "choice" and raw.isdigit():
                options = presentation.commands_of("show_choice")[-1].payload["options"]
                idx = int(raw) - 1
                if 0 <= idx < len(options):
                    presentation.select(options[idx]["value"])
            elif raw:
                task = game.click_later(raw)
                if task is None:
                    print("  (nothing happens)")
                else:
                    tasks.add(task)
                    task.add_done_callback(tasks.discard)
            # Let the handler run up to its next suspension before reading input again.
            await asyncio.sleep(0.05)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("story", nargs="?", default="forest", choices=sorted(STORIES))
    args = parser.parse_args()

    logging.basicConfig(level=Settings.from_env().log_level)
    asyncio.run(play(args.story))


if __name__ == "__main__":
    main()
