#!/usr/bin/env python3
"""
도형 솔버를 명령행에서 실행하는 스크립트
시작 도형들과 목표 도형을 받아 건물 작동 순서를 찾아 출력합니다.
"""

import argparse
import json
import sys

import shape_solver
from i18n import _, available_languages, set_language
from operations import Operation
from process_tree import build_process_tree
from shape_solver import ShapeSolver, SolverConfig, SolveStatus

EXIT_SOLVED = 0
EXIT_NOT_SOLVED = 1
EXIT_INVALID_INPUT = 2


class _ConsoleWorker:
    """로그와 진행 상황을 표준 에러로 보내는 worker"""

    def __init__(self, verbose: bool = False):
        self.is_cancelled = False
        self.verbose = verbose

    def log(self, msg: str, verbose=False):
        # 일반 로그는 shape_solver 의 로그 콜백으로 출력되므로 상세 로그만 담당
        if verbose and self.verbose:
            print(msg, file=sys.stderr)

    def batch_done(self, progress):
        if self.verbose:
            print(_("log.solver.progress", depth=progress.depth, states=progress.level_size,
                    visited=progress.visited_count), file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    op_names = ", ".join(op.value for op in Operation)
    parser = argparse.ArgumentParser(description=_("cli.description"))
    parser.add_argument("target", help=_("cli.help.target"))
    parser.add_argument("starting", nargs="+", help=_("cli.help.starting"))
    parser.add_argument("--ops", default=",".join(op.value for op in Operation),
                        help=_("cli.help.ops", operations=op_names))
    parser.add_argument("--config", help=_("cli.help.config"))
    parser.add_argument("--max-layers", type=int, help=_("cli.help.max_layers"))
    parser.add_argument("--max-states", type=int, help=_("cli.help.max_states"))
    parser.add_argument("--max-depth", type=int, help=_("cli.help.max_depth"))
    parser.add_argument("--prevent-waste", action="store_true", default=None, help=_("cli.help.prevent_waste"))
    parser.add_argument("--orientation-sensitive", action="store_true", default=None,
                        help=_("cli.help.orientation_sensitive"))
    parser.add_argument("--json", action="store_true", help=_("cli.help.json"))
    parser.add_argument("--verbose", action="store_true", help=_("cli.help.verbose"))
    parser.add_argument("--lang", choices=available_languages(), help=_("cli.help.lang"))
    return parser


def build_config(args) -> SolverConfig:
    """설정 파일 값 위에 명령행 인수를 덮어씁니다."""
    data = {}
    if args.config:
        data = SolverConfig.from_json_file(args.config).to_dict()
    overrides = {
        "max_shape_layers": args.max_layers,
        "max_states_per_level": args.max_states,
        "max_depth": args.max_depth,
        "prevent_waste": args.prevent_waste,
        "orientation_sensitive": args.orientation_sensitive,
    }
    data.update({key: value for key, value in overrides.items() if value is not None})
    return SolverConfig.from_dict(data)


def main(argv=None) -> int:
    args = create_parser().parse_args(argv)
    if args.lang:
        set_language(args.lang)

    worker = _ConsoleWorker(verbose=args.verbose)
    if args.verbose:
        shape_solver.set_log_callback(lambda msg: print(msg, file=sys.stderr))

    try:
        config = build_config(args)
        operations = [name for name in args.ops.split(",") if name.strip()]
        solver = ShapeSolver(args.starting, args.target, operations, config)
    except (ValueError, OSError) as e:
        print(_("cli.error.invalid_input", error=str(e)), file=sys.stderr)
        return EXIT_INVALID_INPUT

    try:
        result = solver.solve(worker=worker)
    except KeyboardInterrupt:
        print(_("solver.status.cancelled", states=0), file=sys.stderr)
        return EXIT_NOT_SOLVED
    finally:
        shape_solver.set_log_callback(None)

    if result.status is not SolveStatus.SOLVED:
        print(result.summary())
        return EXIT_NOT_SOLVED

    if args.json:
        tree = build_process_tree(result)
        print(json.dumps({
            "solution": result.solution_string,
            "depth": result.depth,
            "visited": result.visited_count,
            "tree": tree.tree_to_data(),
        }, ensure_ascii=False, indent=2))
    else:
        print(result.solution_string)
        print(result.summary(), file=sys.stderr)
    return EXIT_SOLVED


if __name__ == "__main__":
    sys.exit(main())
