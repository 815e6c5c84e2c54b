from __future__ import annotations

import argparse
import contextlib
import dataclasses
import importlib
import random
import signal
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console

from zauth_bench.adapters.bazaar import BazaarDiscoveryClient
from zauth_bench.adapters.mock import (
    MOCK_ENDPOINTS,
    MockPaymentTransport,
    MockReliabilityCheck,
    mock_reliability_factory,
    mock_transport_factory,
)
from zauth_bench.adapters.payments import format_network, format_price
from zauth_bench.adapters.prepayment import enrich_endpoints, probe_prepayment_batch
from zauth_bench.adapters.types import PaymentSigner
from zauth_bench.adapters.x402 import HttpPaymentTransport
from zauth_bench.adapters.zauth import HttpReliabilityCheck
from zauth_bench.core.compare import run_comparison
from zauth_bench.core.config import (
    Settings,
    StudyConfig,
    detect_network_from_path,
    load_endpoints,
    load_study_config,
    validate_study_config,
)
from zauth_bench.core.dotenv import load_dotenv_if_present
from zauth_bench.core.errors import InsufficientSampleError, ZauthBenchError
from zauth_bench.core.records import ComparisonReport, Endpoint, StudyVerdict
from zauth_bench.core.storage import append_jsonl, write_json
from zauth_bench.core.study import run_study


@contextlib.contextmanager
def interrupt_on_sigint(console: Console) -> Iterator[threading.Event]:
    """First Ctrl+C asks the run to stop at the next boundary; the second aborts."""

    interrupt = threading.Event()

    def _handler(signum: int, frame: Any) -> None:
        if interrupt.is_set():
            raise KeyboardInterrupt
        interrupt.set()
        console.print("\n[yellow]Interrupt received, stopping after the current step. Press Ctrl+C again to abort.[/yellow]")

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield interrupt
    finally:
        signal.signal(signal.SIGINT, previous)


def load_signer(target: str) -> PaymentSigner:
    """Resolve `module:attr` to a signer; classes are instantiated without arguments."""

    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Signer must look like 'module:attr', got {target!r}")
    obj = getattr(importlib.import_module(module_name), attr)
    if isinstance(obj, type):
        obj = obj()
    if not callable(getattr(obj, "payment_header", None)):
        raise ValueError(f"{target} has no payment_header(requirement, endpoint) method")
    return obj


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%dT%H-%M-%S")


def _endpoints_from_args(args: argparse.Namespace, fallback: Path | None = None) -> list[Endpoint]:
    path = Path(args.endpoints) if args.endpoints else fallback
    if path is None:
        if args.mode == "real":
            raise ValueError("--endpoints is required in real mode")
        return list(MOCK_ENDPOINTS)
    return load_endpoints(path)


def _network_from_args(args: argparse.Namespace) -> str | None:
    if args.network:
        return args.network
    if args.endpoints and Path(args.endpoints).is_dir():
        return detect_network_from_path(Path(args.endpoints))
    return None


def _print_verdict(console: Console, verdict: StudyVerdict) -> None:
    lo, hi = verdict.confidence_interval_95
    console.print(f"[bold]Verdict[/bold] ({verdict.state}, {verdict.pairs_completed}/{verdict.pairs_requested} pairs)")
    console.print(
        f"  no-zauth burn rate:   {verdict.no_zauth.mean_burn_rate * 100:.1f}% "
        f"(sd {verdict.no_zauth.std_burn_rate * 100:.1f}%)"
    )
    console.print(
        f"  with-zauth burn rate: {verdict.with_zauth.mean_burn_rate * 100:.1f}% "
        f"(sd {verdict.with_zauth.std_burn_rate * 100:.1f}%)"
    )
    console.print(f"  burn reduction: {verdict.burn_reduction_percent:.1f}% (95% CI {lo:.1f}% to {hi:.1f}%)")
    exact = f", exact {verdict.exact_p_value:.4f}" if verdict.exact_p_value is not None else ""
    console.print(f"  t = {verdict.t_statistic:.3f}, p {verdict.p_value}{exact}")
    console.print(f"  effect size d = {verdict.effect_size:.2f} ({verdict.effect_size_label})")
    console.print(f"  net savings per cycle: {format_price(verdict.net_savings_per_cycle)}")
    console.print(f"  break-even failure rate: {verdict.break_even_failure_rate * 100:.1f}%")


def _print_comparison(console: Console, report: ComparisonReport) -> None:
    s = report.summary
    console.print(f"[bold]Comparison[/bold] ({report.state}, {s.endpoints_compared} endpoints, {report.duration_s:.1f}s)")
    console.print(
        f"  no-zauth:   spent {format_price(s.no_zauth_total_spent)}, burn {format_price(s.no_zauth_total_burn)} "
        f"({s.no_zauth_burn_rate * 100:.1f}%)"
    )
    console.print(
        f"  with-zauth: spent {format_price(s.with_zauth_total_spent)}, burn {format_price(s.with_zauth_total_burn)} "
        f"({s.with_zauth_burn_rate * 100:.1f}%), checks {format_price(s.with_zauth_zauth_cost)}"
    )
    console.print(
        f"  burn reduction {s.burn_reduction_percent:.1f}%, net savings {format_price(s.total_net_savings)}, "
        f"budget used {format_price(s.budget_used)}"
    )
    alloc = report.allocation_comparison
    console.print(
        f"  allocation: no-zauth {alloc.no_zauth.pool_id}, with-zauth {alloc.with_zauth.pool_id} "
        f"({'same' if alloc.same_decision else 'different'} decision, confidence delta {alloc.confidence_delta:+.2f})"
    )
    for category, names in report.skipped_for_budget.items():
        console.print(f"  [{category}] not funded: {', '.join(names)}")


def _cmd_study(args: argparse.Namespace) -> int:
    console = Console()
    settings = Settings.from_env()

    if args.config:
        config = load_study_config(Path(args.config))
    else:
        config = StudyConfig(
            study_id=f"study_{_timestamp()}",
            trials_per_condition=10,
            cycles_per_trial=5,
            base_seed=42,
            mock_failure_rate=settings.mock_failure_rate,
        )
    overrides = {
        "trials_per_condition": args.trials,
        "cycles_per_trial": args.cycles,
        "base_seed": args.seed,
        "budget_usdc": args.budget,
        "verbose": args.verbose or settings.verbose or None,
    }
    config = dataclasses.replace(config, **{k: v for k, v in overrides.items() if v is not None})
    if args.mode == "real" and config.budget_usdc is None:
        config = dataclasses.replace(config, budget_usdc=settings.max_usdc_spend)
    validate_study_config(config)

    endpoints = _endpoints_from_args(args, config.endpoints_path)

    http_clients: list[Any] = []
    if args.mode == "mock":
        transport_factory = mock_transport_factory(config.mock_failure_rate)
        reliability_factory = mock_reliability_factory(config.mock_failure_rate)
    else:
        if not args.signer:
            raise ValueError("--signer is required in real mode")
        signer = load_signer(args.signer)
        transport = HttpPaymentTransport(signer, timeout_s=settings.timeout_s, network=_network_from_args(args))
        checker = HttpReliabilityCheck(settings.zauth_check_url, signer=signer)
        http_clients += [transport, checker]
        transport_factory = lambda rng: transport  # noqa: E731
        reliability_factory = lambda rng: checker  # noqa: E731

    out_dir = Path(args.output_dir or settings.output_dir) / config.study_id
    try:
        with interrupt_on_sigint(console) as interrupt:
            outcome = run_study(
                config,
                endpoints=endpoints,
                transport_factory=transport_factory,
                reliability_factory=reliability_factory,
                interrupt=interrupt,
                console=console,
                show_progress=not args.no_progress,
            )
    except InsufficientSampleError as e:
        if e.trials:
            append_jsonl(out_dir / "trials.jsonl", e.trials)
            console.print(f"Wrote {len(e.trials)} unpaired trial(s) to {out_dir}")
        raise
    finally:
        for c in http_clients:
            c.close()

    write_json(out_dir / "verdict.json", outcome.verdict)
    append_jsonl(out_dir / "trials.jsonl", outcome.all_trials)
    _print_verdict(console, outcome.verdict)
    console.print(f"Wrote results to {out_dir}")
    return 0


def _cmd_compare(args: argparse.Namespace) -> int:
    console = Console()
    settings = Settings.from_env()
    endpoints = _endpoints_from_args(args)
    budget = args.budget if args.budget is not None else settings.max_usdc_spend

    http_clients: list[Any] = []
    if args.mode == "mock":
        transport: Any = MockPaymentTransport(random.Random(args.seed), settings.mock_failure_rate)
        reliability: Any = MockReliabilityCheck(random.Random(f"reliability:{args.seed}"), settings.mock_failure_rate)
    else:
        if not args.signer:
            raise ValueError("--signer is required in real mode")
        signer = load_signer(args.signer)
        transport = HttpPaymentTransport(signer, timeout_s=settings.timeout_s, network=_network_from_args(args))
        reliability = HttpReliabilityCheck(settings.zauth_check_url, signer=signer)
        http_clients += [transport, reliability]

    try:
        with interrupt_on_sigint(console) as interrupt:
            report = run_comparison(
                endpoints,
                budget,
                transport=transport,
                reliability=reliability,
                interrupt=interrupt,
                console=console,
                verbose=args.verbose or settings.verbose,
            )
    finally:
        for c in http_clients:
            c.close()

    out_path = Path(args.output_dir or settings.output_dir) / f"{_timestamp()}_stage2" / "comparison.json"
    write_json(out_path, report)
    _print_comparison(console, report)
    console.print(f"Wrote comparison to {out_path}")
    return 0


def _cmd_discover(args: argparse.Namespace) -> int:
    console = Console()
    settings = Settings.from_env()

    client = BazaarDiscoveryClient(
        args.base_url or settings.bazaar_base_url,
        network=args.network,
        page_size=args.limit,
        timeout_s=settings.timeout_s,
        console=console,
    )
    try:
        endpoints = list(client.iter_endpoints({"type": "http"}, max_pages=args.max_pages))
    finally:
        client.close()
    console.print(f"Discovered {len(endpoints)} endpoints on {format_network(args.network)}")

    out_dir = Path(args.output_dir or settings.output_dir) / f"{_timestamp()}_stage1_{args.network}"
    if args.probe and endpoints:
        probes = probe_prepayment_batch(
            [e.url for e in endpoints],
            concurrency=args.concurrency,
            timeout_s=args.probe_timeout_s,
        )
        endpoints = enrich_endpoints(endpoints, probes)
        console.print(f"{sum(1 for e in endpoints if e.requires_payment)} endpoints answered 402")
        write_json(out_dir / "prepayment.json", {"probes": probes})

    for category in ("pool", "whale", "sentiment"):
        in_category = [e for e in endpoints if e.category == category]
        console.print(f"  {category}: {len(in_category)}")

    out_path = out_dir / "endpoints.json"
    write_json(out_path, {"network": args.network, "endpoints": endpoints})
    console.print(f"Wrote endpoints to {out_path}")
    return 0


def _add_run_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--mode", choices=("mock", "real"), default="mock")
    p.add_argument("--endpoints", default=None, help="Stage 1 endpoints.json or its folder")
    p.add_argument("--network", choices=("base", "solana"), default=None)
    p.add_argument("--signer", default=None, help="module:attr of the payment signer (real mode)")
    p.add_argument("--budget", type=float, default=None, help="USDC cap")
    p.add_argument("--output-dir", default=None)
    p.add_argument("--verbose", action="store_true")


def main(argv: list[str] | None = None) -> int:
    # Load .env early so endpoint URLs and spend caps can live there.
    load_dotenv_if_present()

    parser = argparse.ArgumentParser(prog="zauth-bench")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_study = sub.add_parser("study", help="Run a matched-pair study and compute the verdict")
    p_study.add_argument("--config", default=None, help="Path to study YAML")
    p_study.add_argument("--trials", type=int, default=None, help="Trials per condition")
    p_study.add_argument("--cycles", type=int, default=None, help="Cycles per trial")
    p_study.add_argument("--seed", type=int, default=None, help="Base seed")
    p_study.add_argument("--no-progress", action="store_true")
    _add_run_options(p_study)
    p_study.set_defaults(func=_cmd_study)

    p_compare = sub.add_parser("compare", help="Query each endpoint with and without the reliability check")
    p_compare.add_argument("--seed", type=int, default=42, help="Seed for mock mode")
    _add_run_options(p_compare)
    p_compare.set_defaults(func=_cmd_compare)

    p_discover = sub.add_parser("discover", help="List paid endpoints from the Bazaar and write a Stage 1 file")
    p_discover.add_argument("--network", choices=("base", "solana"), default="base")
    p_discover.add_argument("--base-url", default=None)
    p_discover.add_argument("--limit", type=int, default=100, help="Page size")
    p_discover.add_argument("--max-pages", type=int, default=10)
    p_discover.add_argument("--probe", action="store_true", help="Probe each endpoint for a 402")
    p_discover.add_argument("--concurrency", type=int, default=5)
    p_discover.add_argument("--probe-timeout-s", type=float, default=5.0)
    p_discover.add_argument("--output-dir", default=None)
    p_discover.set_defaults(func=_cmd_discover)

    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except (ZauthBenchError, ValueError, FileNotFoundError) as e:
        Console(stderr=True).print(f"[red]Error:[/red] {e}")
        return 1
