"""Mentor - game screenshot advisor

Simple CLI for analyzing one screenshot.
"""

import argparse
import asyncio
import json
import sys

from mentor.agents.orchestrator import build_orchestrator
from mentor.config import settings
from mentor.errors import MentorError
from mentor.models.analysis import AnalysisRequest
from mentor.models.progress import JobStatus, ProgressSnapshot
from mentor.models.recommendation import Recommendation
from mentor.services.progress_channel import SnapshotChannel

STATUS_MARKS = {
    JobStatus.PENDING: " ",
    JobStatus.IN_PROGRESS: "~",
    JobStatus.COMPLETED: "+",
    JobStatus.FAILED: "!",
}


def print_progress(snapshot: ProgressSnapshot) -> None:
    print(f"\n[*] Progress {snapshot.total_percentage:.0f}%", file=sys.stderr)
    for job in snapshot.jobs:
        print(f"  [{STATUS_MARKS[job.status]}] {job.name} ({job.percent:.0f}%)", file=sys.stderr)


def print_recommendation(recommendation: Recommendation) -> None:
    print(f"\n{'=' * 50}")
    print(f"SUMMARY (confidence {recommendation.confidence:.2f}, via {recommendation.provider_used}):")
    print(f"{'=' * 50}")
    print(recommendation.summary)
    print(f"\nANALYSIS:\n{recommendation.analysis}")
    for i, item in enumerate(recommendation.recommendations, 1):
        print(f"\n{i}. [{item.priority.value.upper()}] {item.action}")
        if item.reasoning:
            print(f"   Why: {item.reasoning}")
        if item.context:
            print(f"   Context: {item.context}")
        if item.has_reference_link:
            print(f"   Source: {item.reference_link}")
    if recommendation.search_results:
        print(f"\nSources ({len(recommendation.search_results)}):")
        for result in recommendation.search_results:
            print(f"  - {result.title}: {result.url}")


async def watch_progress(channel: SnapshotChannel) -> None:
    async for snapshot in channel:
        print_progress(snapshot)


async def run_analysis(args: argparse.Namespace) -> int:
    try:
        request = AnalysisRequest.from_file(args.image, args.prompt, game_name=args.game)
    except OSError as e:
        print(f"[!] Cannot read image {args.image}: {e}", file=sys.stderr)
        return 1
    try:
        orchestrator = build_orchestrator(settings)
        orchestrator.plan(args.strategy)
    except ValueError as e:
        print(f"[!] Configuration error: {e}", file=sys.stderr)
        return 1

    channel = SnapshotChannel()
    watcher = asyncio.create_task(watch_progress(channel))

    def on_stream(fragment: str) -> None:
        if not args.json:
            print(fragment, end="", flush=True)

    try:
        recommendation = await orchestrator.analyze(
            request,
            on_progress=channel,
            on_stream=on_stream,
            strategy=args.strategy,
        )
    except (MentorError, ValueError) as e:
        print(f"\n[!] Error: {e}", file=sys.stderr)
        return 1
    finally:
        channel.close()
        await watcher

    if args.json:
        print(json.dumps(recommendation.to_dict(), indent=2))
    else:
        print_recommendation(recommendation)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Mentor game screenshot advisor")
    parser.add_argument("--image", "-i", required=True, help="Path to the screenshot")
    parser.add_argument("--prompt", "-p", required=True, help="What you want advice on")
    parser.add_argument("--game", "-g", help="Name of the game in the screenshot")
    parser.add_argument("--strategy", "-s", help="Analysis strategy (default: from config)")
    parser.add_argument("--json", action="store_true", help="Print the recommendation as JSON")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_analysis(args)))


if __name__ == "__main__":
    main()
