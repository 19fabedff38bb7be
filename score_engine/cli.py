import argparse, json, logging, sys
from score_engine.core.config import LOG_LEVEL
from score_engine.core.database import SessionLocal
from score_engine.core.errors import ScoringEngineError
from score_engine.services.recalculation import recalculate_test

def main(argv=None):
    ap = argparse.ArgumentParser(description="Re-score and re-rank every completed attempt of a test")
    ap.add_argument("--test-id", "--test_id", dest="test_id", required=True)
    ap.add_argument("--dry_run", "--dry-run", dest="dry_run", action="store_true")
    args = ap.parse_args(argv)
    logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    db = SessionLocal()
    try:
        summary = recalculate_test(db, args.test_id, dry_run=args.dry_run)
    except ScoringEngineError as e:
        print(f"error: {e}", file=sys.stderr); return 1
    finally:
        db.close()
    print(json.dumps(summary.model_dump(), indent=2, sort_keys=True))
    if args.dry_run: print("dry run: nothing written")
    return 0

if __name__=="__main__": sys.exit(main())
