"""
bootimage - command line

Builds bootable disk images from a kernel and a bootloader ELF, runs them,
and runs test kernels under QEMU.
"""

import argparse
import logging
import sys
from pathlib import Path

from .builder import Builder, run_image
from .config import CONFIG_FILENAME, BootimageConfig, load_config
from .errors import BootimageError, ConfigError
from .harness import TestRunner, TestTarget, discover_test_kernels

log = logging.getLogger(__name__)


def _add_image_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--bootloader", "-b",
        type=Path,
        help="Bootloader executable containing a .bootloader section",
    )
    parser.add_argument(
        "--package",
        type=Path,
        default=None,
        help="Secondary payload appended after the kernel",
    )
    parser.add_argument(
        "--min-size",
        type=int,
        default=None,
        help="Minimum image size in bytes (zero-extended)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bootimage",
        description="Create bootable disk images and run kernel tests in QEMU",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=Path(CONFIG_FILENAME),
        help=f"Configuration file (default: ./{CONFIG_FILENAME})",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Only report problems")

    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Create a disk image for each kernel")
    _add_image_options(build)
    build.add_argument("--output", "-o", type=Path, default=None, help="Image path (single kernel only)")
    build.add_argument("kernels", type=Path, nargs="+", help="Kernel executables")

    run = sub.add_parser("run", help="Create a disk image and run it")
    _add_image_options(run)
    run.add_argument("--output", "-o", type=Path, default=None, help="Image path")
    run.add_argument("kernel", type=Path, help="Kernel executable")
    run.add_argument("run_args", nargs=argparse.REMAINDER, help="Extra arguments for the run command")

    test = sub.add_parser("test", help="Run test kernels in QEMU")
    _add_image_options(test)
    test.add_argument("kernels", type=Path, nargs="*", help="Test kernel executables")
    test.add_argument(
        "--dir",
        type=Path,
        default=None,
        help="Also test every executable named test-* in this directory",
    )
    test.add_argument(
        "--images",
        type=Path,
        nargs="+",
        default=None,
        help="Run already-built images instead of building kernels",
    )
    test.add_argument("--timeout", type=float, default=None, help="Per-test timeout in seconds")
    test.add_argument("--jobs", "-j", type=int, default=None, help="Maximum concurrent QEMU processes")
    test.add_argument("--report", type=Path, default=None, help="Write a JSON report here")

    return parser


def _load(args: argparse.Namespace) -> BootimageConfig:
    config = load_config(args.config)
    if args.package is not None:
        config.package_filepath = args.package
    if args.min_size is not None:
        if args.min_size < 0:
            raise ConfigError("--min-size must not be negative")
        config.minimum_image_size = args.min_size
    return config


def _builder(args: argparse.Namespace, config: BootimageConfig) -> Builder:
    if args.bootloader is None:
        raise ConfigError("--bootloader is required to build images")
    return Builder(args.bootloader, config, root_dir=Path.cwd())


def cmd_build(args: argparse.Namespace) -> int:
    config = _load(args)
    if args.output is not None and len(args.kernels) > 1:
        raise ConfigError("--output can only be used with a single kernel")
    builder = _builder(args, config)

    if len(args.kernels) == 1:
        images = [builder.create_bootimage(args.kernels[0], args.output)]
    else:
        images = builder.build_all(args.kernels)
    for image in images:
        print(image)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    config = _load(args)
    image = _builder(args, config).create_bootimage(args.kernel, args.output)
    run_args = args.run_args
    if run_args and run_args[0] == "--":
        run_args = run_args[1:]
    return run_image(config, image, run_args)


def _image_target_name(image: Path) -> str:
    name = image.stem
    return name[len("bootimage-"):] if name.startswith("bootimage-") else name


def cmd_test(args: argparse.Namespace) -> int:
    config = _load(args)
    if args.timeout is not None and args.timeout <= 0:
        raise ConfigError(f"--timeout must be a positive number of seconds, got {args.timeout}")
    if args.jobs is not None and args.jobs < 1:
        raise ConfigError(f"--jobs must be at least 1, got {args.jobs}")

    if args.images:
        targets = [TestTarget(_image_target_name(p), p) for p in args.images]
    else:
        kernels = list(args.kernels)
        if args.dir is not None:
            kernels.extend(discover_test_kernels(args.dir))
        if not kernels:
            raise ConfigError("No test kernels given (pass kernels, --dir or --images)")
        builder = _builder(args, config)
        targets = []
        for kernel in kernels:
            log.info("BUILD: %s", kernel.name)
            image = builder.build_all([kernel])[0]
            targets.append(TestTarget(kernel.name, image))

    runner = TestRunner(
        timeout=args.timeout if args.timeout is not None else config.test_timeout,
        max_workers=args.jobs if args.jobs is not None else config.test_jobs,
    )
    report = runner.run_all(targets)

    if args.report is not None:
        report.save(args.report)
        log.info("Report: %s", args.report)

    print()
    if report.succeeded:
        print("All tests succeeded.")
        return 0

    print("The following tests failed:", file=sys.stderr)
    for outcome in report.failures:
        print(f"    {outcome.name}: {outcome.result}", file=sys.stderr)
    return 1


COMMANDS = {
    "build": cmd_build,
    "run": cmd_run,
    "test": cmd_test,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-5s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        return COMMANDS[args.command](args)
    except BootimageError as e:
        log.error("error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
