#!/usr/bin/env python3
"""
Scouting search demo: natural-language queries over the sample player set.

Usage:
    python demo.py              # interactive REPL
    python demo.py --scripted   # run predefined queries
"""

import sys

from dotenv import load_dotenv

load_dotenv()

from scout.classifier import OpenAIClassifier
from scout.config import configure_logging, get_settings
from scout.errors import ParameterValidationError
from scout.orchestrator import SearchOrchestrator, SearchResponse
from scout.query_parser import QueryClassifier
from scout.repository import InMemoryPlayerRepository
from scout.scoring import format_value_range
from scout.token_tracker import TokenTracker


def format_response(response: SearchResponse) -> str:
    lines = []
    p = response.parameters
    summary = response.summary
    source = "fallback parser" if summary.fallback_used else ("cache" if summary.cache_hit else "classifier")
    lines.append(f"  Parsed via {source} (confidence {summary.confidence:.2f}): {p.parsed_intent}")

    active = []
    if p.position:
        active.append(f"position={','.join(p.position)}")
    if p.age:
        active.append(f"age={p.age.display()}")
    if p.nationality:
        active.append(f"nationality={','.join(p.nationality)}")
    if p.league:
        active.append(f"league={','.join(p.league)}")
    if p.market_value:
        active.append(f"value={format_value_range(p.market_value.min, p.market_value.max)}")
    if p.height:
        active.append(f"height={p.height.display()}cm")
    if p.transfer_status:
        active.append(f"transfer={p.transfer_status}")
    if p.keywords:
        active.append(f"keywords={list(p.keywords)}")
    if active:
        lines.append(f"  Filters: {', '.join(active)}")
    lines.append(f"  {summary.total_players_found} players found, showing {len(response.results)}\n")

    for r in response.results:
        c = r.candidate
        e = r.explanation
        lines.append(f"  {r.rank:>2}. [{e.strength_score:>3}] {c.display_name} "
                     f"({c.position or '?'}, {c.age or '?'}, {c.club or 'no club'})")
        lines.append(f"      {e.summary}")
        for concern in e.potential_concerns:
            lines.append(f"      ! {concern}")

    for suggestion in response.suggestions:
        lines.append(f"  > {suggestion}")
    return "\n".join(lines)


def _search(orchestrator: SearchOrchestrator, query: str):
    try:
        print(format_response(orchestrator.search(query, overrides={"limit": 5})))
    except ParameterValidationError as e:
        print(f"  Invalid query: {e}")


def run_interactive(orchestrator: SearchOrchestrator):
    print("\nDescribe the player you are looking for (or 'quit' to exit):\n")

    while True:
        try:
            query = input("scout> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if query.lower() in ("quit", "exit", "q"):
            break

        _search(orchestrator, query)
        print()


SCRIPTED_QUERIES = [
    "young striker under 25",
    "Brazilian winger in the Premier League",
    "experienced centre back over 28 under €30m",
    "goalkeeper 190cm",
    "free agent midfielder",
]


def run_scripted(orchestrator: SearchOrchestrator):
    for i, query in enumerate(SCRIPTED_QUERIES, 1):
        print(f"\n{'═' * 60}")
        print(f"  Query {i}: \"{query}\"")
        print(f"{'═' * 60}")

        _search(orchestrator, query)


def main():
    scripted = "--scripted" in sys.argv
    settings = get_settings()
    configure_logging("WARNING")

    print("Loading players...")
    repository = InMemoryPlayerRepository.load(settings.data_path)
    tracker = TokenTracker(settings.token_store_path)
    classifier = OpenAIClassifier(
        api_key=settings.openai_api_key,
        model=settings.classifier_model,
        temperature=settings.classifier_temperature,
        tracker=tracker,
    )
    query_parser = QueryClassifier(classifier, settings=settings)
    print(f"Ready, {len(repository):,} players loaded.\n")

    with SearchOrchestrator(query_parser, repository, settings=settings) as orchestrator:
        if scripted:
            run_scripted(orchestrator)
        else:
            run_interactive(orchestrator)
        stats = query_parser.usage_stats()

    s = tracker.summary()
    print(f"\nQueries: {stats['total_queries']} ({stats['fallback_used']} fallback, {stats['cache_hits']} cached)")
    print(f"Token usage: {s['total_calls']} API calls, ${s['total_cost_usd']:.6f} total cost")


if __name__ == "__main__":
    main()
