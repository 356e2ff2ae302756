"""Line-oriented UCI-style front end for :class:`AdvisoryEngine`."""

from __future__ import annotations

import argparse
import io
import sys
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Optional, Sequence

import chess

from .config import SettingsRegistry
from .engine import AdvisoryEngine, MoveResult
from .errors import AnalysisCancelled, EngineError


def _ensure_line_buffered_stdout() -> None:
    stdout = sys.stdout
    if isinstance(stdout, io.TextIOBase) and getattr(stdout, "line_buffering", False):
        return
    buffer = getattr(stdout, "buffer", None)
    if buffer is None:
        return
    sys.stdout = io.TextIOWrapper(buffer, line_buffering=True)


class EngineShell:
    def __init__(
        self,
        *,
        preset: str = "standard",
        level: str = "intermediate-1",
        seed: Optional[int] = None,
        engine: Optional[AdvisoryEngine] = None,
    ) -> None:
        self.engine_name = "Blindfish"
        self.engine_author = "Blindfish developers"
        self.board = chess.Board()
        self.debug = True
        self.running = True
        self.state_lock = threading.Lock()
        self.move_calculating = False
        self.idle = threading.Event()
        self.idle.set()

        if engine is None:
            settings = SettingsRegistry.resolve(preset)
            if seed is not None:
                settings = settings.with_seed(seed)
            engine = AdvisoryEngine(settings=settings, logger=self._log_debug)
        self.engine = engine
        self.engine.catalog.get(level)
        self.level_key = level
        self.engine.on_evaluation(self._print_line)
        self.engine.initialize().result()

        self.dispatch_table: Dict[str, Callable[[str], None]] = {
            "quit": self.handle_quit,
            "debug": self.handle_debug,
            "isready": self.handle_isready,
            "position": self.handle_position,
            "boardpos": self.handle_boardpos,
            "go": self.handle_go,
            "stop": self.handle_stop,
            "levels": self.handle_levels,
            "levelinfo": self.handle_levelinfo,
            "ucinewgame": self.handle_ucinewgame,
            "uci": self.handle_uci,
            "setoption": self.handle_setoption,
        }

    def _print_line(self, line: str) -> None:
        print(line, flush=True)

    def _log_debug(self, message: str) -> None:
        if not self.debug:
            return
        for line in message.splitlines():
            print(f"info string {line}", flush=True)

    def start(self) -> None:
        _ensure_line_buffered_stdout()
        self.handle_uci()
        try:
            self.command_loop()
        finally:
            self.engine.destroy()

    def command_loop(self) -> None:
        while self.running:
            command = sys.stdin.readline()
            if not command:
                break
            self.handle_command(command)

    def handle_command(self, command: str) -> None:
        command = command.strip()
        if not command:
            return
        parts = command.split(" ", 1)
        name = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""
        handler = self.dispatch_table.get(name, self.handle_unknown)
        try:
            handler(args)
        except Exception as exc:
            print(f"info string Error processing command: {exc}")
        finally:
            sys.stdout.flush()

    def handle_unknown(self, args: str) -> None:
        print(f"unknown command received: '{args}'")

    def handle_quit(self, _: str) -> None:
        print("info string Engine shutting down")
        self.running = False

    def handle_debug(self, args: str) -> None:
        setting = args.strip().lower()
        if setting == "on":
            self.debug = True
        elif setting == "off":
            self.debug = False
        else:
            print("info string Invalid debug setting. Use 'on' or 'off'.")
            return
        print(f"info string Debug:{self.debug}")

    def handle_isready(self, _: str) -> None:
        with self.state_lock:
            if not self.engine.is_ready():
                print(f"info string Engine not ready ({self.engine.state.value})")
            elif self.move_calculating:
                print("info string Engine is busy processing a move")
            else:
                print("readyok")

    def handle_position(self, args: str) -> None:
        with self.state_lock:
            if args.startswith("startpos"):
                self.board.reset()
                if self.debug:
                    print(f"info string Set to start position: {self.board.fen()}")
            elif args.startswith("fen"):
                fen = args[4:].split(" moves", 1)[0].strip()
                try:
                    self.board.set_fen(fen)
                except ValueError:
                    print("info string Invalid FEN string provided.")
                    return
                if self.debug:
                    print(f"info string setpos {self.board.fen()}")
            else:
                print("info string Unknown position command.")
                return
            if " moves" in f" {args}":
                moves_part = args.split("moves", 1)[1].strip()
                for move_text in moves_part.split():
                    try:
                        move = self.board.parse_uci(move_text)
                    except ValueError:
                        print(f"info string Invalid move in position command: {move_text}")
                        break
                    self.board.push(move)

    def handle_boardpos(self, _: str) -> None:
        with self.state_lock:
            print(f"info string Position: {self.board.fen()}")

    def handle_go(self, args: str) -> None:
        level_key = self._parse_go_level(args) or self.level_key
        with self.state_lock:
            fen = self.board.fen()
            self.move_calculating = True
            self.idle.clear()
        future = self.engine.analyze_position(fen, level_key)
        future.add_done_callback(self._report_bestmove)

    def _report_bestmove(self, future: "Future[MoveResult]") -> None:
        try:
            result = future.result()
        except AnalysisCancelled as exc:
            # A superseding "go" reports its own bestmove.
            self._log_debug(str(exc))
            return
        except EngineError as exc:
            print(f"info string Error generating move: {exc}")
            best = "(none)"
        else:
            best = "(none)" if result.is_none else result.move
        with self.state_lock:
            print(f"bestmove {best}", flush=True)
            self.move_calculating = False
            self.idle.set()

    def handle_stop(self, _: str) -> None:
        if self.engine.cancel():
            with self.state_lock:
                print("bestmove (none)")
                self.move_calculating = False
                self.idle.set()
        else:
            print("info string No analysis in progress")

    def handle_levels(self, _: str) -> None:
        for entry in self.engine.get_all_levels():
            print(f"info string level {entry['key']} {entry['name']} {entry['rating']}")

    def handle_levelinfo(self, args: str) -> None:
        key = args.strip()
        print(f"info string {self.engine.get_level_info(key)}")

    def handle_ucinewgame(self, _: str) -> None:
        with self.state_lock:
            self.board.reset()
            if self.debug:
                print("info string New game started, board reset to initial position")
            print("info string New game initialized")

    def handle_uci(self, _: str = "") -> None:
        print(f"id name {self.engine_name}")
        print(f"id author {self.engine_author}")
        print(f"option name Level type combo default {self.level_key}", end="")
        for entry in self.engine.get_all_levels():
            print(f" var {entry['key']}", end="")
        print()
        print("uciok")

    def handle_setoption(self, args: str) -> None:
        tokens = args.split()
        lowered = [token.lower() for token in tokens]
        if "name" not in lowered or "value" not in lowered:
            print("info string Usage: setoption name Level value KEY")
            return
        name = " ".join(tokens[lowered.index("name") + 1 : lowered.index("value")])
        value = " ".join(tokens[lowered.index("value") + 1 :])
        if name.lower() != "level":
            print(f"info string Unknown option: {name}")
            return
        if value not in self.engine.catalog:
            print(f"info string Level not found: {value}")
            return
        self.level_key = value
        print(f"info string Level set to {self.engine.get_level_info(value)}")

    def _parse_go_level(self, args: str) -> Optional[str]:
        tokens = args.split()
        for index, token in enumerate(tokens):
            if token.lower() == "level" and index + 1 < len(tokens):
                return tokens[index + 1]
        return None


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Graduated-strength chess move advisor (UCI-style shell)")
    parser.add_argument("--preset", default="standard", choices=SettingsRegistry.names(), help="Settings preset")
    parser.add_argument("--level", default="intermediate-1", help="Default level key for 'go'")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible move choices")
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        shell = EngineShell(preset=args.preset, level=args.level, seed=args.seed)
    except EngineError as exc:
        parser.error(str(exc))
    shell.start()


if __name__ == "__main__":
    main()
