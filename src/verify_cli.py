import argparse, logging, sys
from imageverify.config import HarnessConfig
from imageverify.engine import verify_suites
from imageverify.errors import ConfigError, ExpectationError
from imageverify.expectations import load_suites
from imageverify.report import format_report, reports_to_json

def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="ImageVerify CLI")
    p.add_argument("--table", required=True, action="append",
                   help="YAML expectation table (repeat for several suites)")
    p.add_argument("--root", help="Test files root (default: $IMAGEVERIFY_TEST_FILES_ROOT or .)")
    p.add_argument("--workers", type=int, help="Fixtures verified in parallel per suite")
    p.add_argument("--chunk-size", type=int, dest="chunk_bytes",
                   help="Bytes read per step while digesting")
    p.add_argument("--json", action="store_true", help="Print a JSON report")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        config = HarnessConfig.from_env(test_files_root=args.root, workers=args.workers,
                                        chunk_bytes=args.chunk_bytes)
        suites = load_suites(args.table)
    except (ConfigError, ExpectationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    reports = verify_suites(suites, config)
    if args.json:
        print(reports_to_json(reports))
    else:
        for r in reports:
            print(format_report(r))
    return 0 if all(r.passed for r in reports) else 1

if __name__ == "__main__":
    sys.exit(main())
