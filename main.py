#!/usr/bin/env python3
"""
Grafana Alert Receiver - Prometheus-enriched, multi-backend LLM alert analysis.
"""

import argparse
import json
import sys

#
# NOTE: Keep receiver imports lazy (inside main) so `--help` stays cheap.
#


def run_single_job(payload: str) -> None:
    """Process one webhook payload synchronously and print the resulting record as JSON."""
    from receiver.api.webhook import configure_logging
    from receiver.api.worker import load_payload, pipeline_from_config
    from receiver.config import load_config
    from receiver.core.models import new_job

    configure_logging()
    pipeline = pipeline_from_config(load_config())
    record = pipeline.process_job(new_job(load_payload(payload)))
    print(json.dumps(record.model_dump(mode="json"), indent=2, sort_keys=False))


def main():
    parser = argparse.ArgumentParser(
        description="Grafana alert receiver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the webhook (port from PORT, default 9094)
  python main.py --serve-webhook

  # Analyse a single saved Grafana payload without the HTTP server
  python main.py --run-job --job-file payload.json
        """,
    )
    parser.add_argument(
        "--serve-webhook",
        action="store_true",
        help="Run the HTTP server that receives Grafana webhook notifications",
    )
    parser.add_argument(
        "--run-job",
        action="store_true",
        help="Analyse a single Grafana webhook payload from JSON (stdin by default) and print the record.",
    )
    parser.add_argument(
        "--job-file",
        help="Path to a JSON file containing a Grafana webhook payload (used with --run-job). If omitted, reads stdin.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Webhook server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Webhook server listen port (default: $PORT or 9094)")

    args = parser.parse_args()

    try:
        if args.serve_webhook:
            from receiver.api.webhook import run as run_webhook

            run_webhook(host=args.host, port=args.port)
            return

        if args.run_job:
            if args.job_file:
                with open(args.job_file, "r", encoding="utf-8") as f:
                    payload = f.read()
            else:
                payload = sys.stdin.read()
            run_single_job(payload)
            return

        parser.print_help()

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
