"""Main CLI entry point for the epic content pipeline."""
import time
from pathlib import Path

import click
from anthropic import Anthropic
from rich.table import Table

from utils.logger import setup_logger, console, print_stage_report
from storage.database import Database
from ingestion.fetcher import ChapterFetcher, FetchError, load_chapter_for
from ingestion.segmenter import segment_passes
from extraction.llm_client import GenerationError, LLMClient
from extraction.question_generator import QuestionGenerator
from extraction.themes import ThemeStore
from extraction.quality import QuestionQualityChecker
from review.staging import ReviewSheet
from importing.importer import ContentImporter, ImportReport
from importing.cleanup import DuplicateCleanup
from execution.quota_probe import probe_quota
from monitoring.progress_log import ChapterProgressLog
from monitoring.progress_tracker import ProgressTracker
import config

logger = setup_logger(__name__)

kanda_option = click.option('--kanda', default=config.DEFAULT_KANDA, show_default=True, help='Book identifier')
sarga_option = click.option('--sarga', required=True, type=int, help='Chapter number')


def build_generator() -> QuestionGenerator:
    # Retries come from RetryHandler only
    client = Anthropic(api_key=config.ANTHROPIC_API_KEY, max_retries=0)
    return QuestionGenerator(LLMClient(client, config.ANTHROPIC_MODEL))


def print_import_report(title: str, report: ImportReport) -> None:
    counts = report.counts()
    if report.expected_count is not None:
        counts["expected in store"] = report.expected_count
    if report.actual_count is not None:
        counts["found in store"] = report.actual_count
    print_stage_report(title, counts, report.errors)
    if report.verified is False:
        console.print("[yellow]Verification mismatch: check the store before re-running[/yellow]")


def run_fetch(kanda: str, sarga: int, progress_log: ChapterProgressLog) -> bool:
    chapter_key = f"{kanda}_sarga_{sarga}"
    fetcher = ChapterFetcher()
    try:
        source = fetcher.fetch_and_save(kanda, sarga)
    except FetchError as e:
        console.print(f"[red]Error: {e}[/red]")
        progress_log.record(chapter_key, "fetch", "failed", error=str(e))
        return False
    finally:
        fetcher.close()

    progress_log.record(chapter_key, "fetch", "completed", verses=source.total_verses)
    console.print(f"[green]✓ Fetched {source.total_verses} verses for {chapter_key}[/green]")
    return True


def run_generate(kanda: str, sarga: int, multipass: bool, progress_log: ChapterProgressLog) -> bool:
    chapter_key = f"{kanda}_sarga_{sarga}"
    try:
        source = load_chapter_for(kanda, sarga)
    except FileNotFoundError:
        console.print(f"[red]Error: {chapter_key} has not been fetched[/red]")
        return False

    generator = build_generator()
    progress_log.record(chapter_key, "generate", "started")
    try:
        result = generator.generate_chapter(source, multipass=multipass)
    except GenerationError as e:
        console.print(f"[red]Error during generation: {e}[/red]")
        progress_log.record(chapter_key, "generate", "failed", error=str(e))
        return False

    if result.summary:
        generator.save_summary(source, result.summary)
    generator.save_questions(source, result.questions)

    progress_log.record(
        chapter_key, "generate", "completed",
        questions=len(result.questions), failed_passes=len(result.failed_passes)
    )
    print_stage_report(
        f"Generation: {chapter_key}",
        {
            "questions": len(result.questions),
            "failed passes": len(result.failed_passes),
            "tokens used": generator.llm.total_tokens_used,
        },
        [f"Pass failed: {name}" for name in result.failed_passes]
    )
    return True


def run_generate_hard(kanda: str, sarga: int, progress_log: ChapterProgressLog) -> bool:
    chapter_key = f"{kanda}_sarga_{sarga}"
    try:
        source = load_chapter_for(kanda, sarga)
    except FileNotFoundError:
        console.print(f"[red]Error: {chapter_key} has not been fetched[/red]")
        return False

    if not source.usable_verses:
        console.print(f"[red]Error: {chapter_key} has no usable verses; fetch it again[/red]")
        progress_log.record(chapter_key, "hard", "failed", error="no usable verses")
        return False

    chapter_themes = ThemeStore().ensure(kanda, sarga, source.total_verses)
    generator = build_generator()
    try:
        questions = generator.generate_hard_addon(source, chapter_themes)
    except GenerationError as e:
        console.print(f"[red]Error during hard question generation: {e}[/red]")
        progress_log.record(chapter_key, "hard", "failed", error=str(e))
        return False

    generator.save_questions(source, questions, kind="hard_questions_addon")
    progress_log.record(chapter_key, "hard", "completed", questions=len(questions))
    print_stage_report(
        f"Hard questions: {chapter_key}",
        {"themes": len(chapter_themes.themes), "questions": len(questions)}
    )
    return True


def run_import(
    kanda: str,
    sarga: int,
    from_review: bool,
    dry_run: bool,
    retry: bool,
    progress_log: ChapterProgressLog
) -> ImportReport:
    chapter_key = f"{kanda}_sarga_{sarga}"
    db = Database()
    importer = ContentImporter(db, retry_on_failure=retry, dry_run=dry_run)
    if from_review:
        content = importer.load_approved(ReviewSheet(db), chapter_key)
    else:
        content = importer.load_generated(kanda, sarga)

    report = importer.import_chapter(content)
    if not dry_run:
        progress_log.record(chapter_key, "import", "completed", **report.counts())
    print_import_report(f"Import: {chapter_key}{' (dry run)' if dry_run else ''}", report)
    return report


@click.group()
def cli():
    """Epic content pipeline: fetch, generate, review and import quiz content."""
    pass


@cli.command()
@kanda_option
@sarga_option
def fetch(kanda, sarga):
    """Fetch one chapter's verses from the source site."""
    console.print("\n[bold cyan]Chapter Fetch[/bold cyan]\n")
    run_fetch(kanda, sarga, ChapterProgressLog())


@cli.command()
@kanda_option
@sarga_option
def segment(kanda, sarga):
    """Show the thematic passes for a fetched chapter."""
    try:
        source = load_chapter_for(kanda, sarga)
    except FileNotFoundError:
        console.print(f"[red]Error: {kanda}_sarga_{sarga} has not been fetched[/red]")
        return
    if source.total_verses == 0:
        console.print("[red]Error: chapter has no verses to segment[/red]")
        return

    table = Table(title=f"{source.chapter_key} ({source.total_verses} verses)", header_style="bold cyan")
    table.add_column("Pass", justify="right")
    table.add_column("Name")
    table.add_column("Verses")
    table.add_column("Focus")
    for thematic_pass in segment_passes(source):
        start, end = thematic_pass.resolve(source.total_verses)
        verses = f"{start}-{end}" if start <= end else "(none)"
        table.add_row(str(thematic_pass.pass_number), thematic_pass.name, verses, thematic_pass.focus)
    console.print(table)


@cli.command()
@kanda_option
@sarga_option
@click.option('--multipass/--standard', default=True, show_default=True, help='Generate pass by pass')
def generate(kanda, sarga, multipass):
    """Generate a summary and quiz questions for a fetched chapter."""
    console.print("\n[bold cyan]Question Generation[/bold cyan]\n")
    if not config.ANTHROPIC_API_KEY:
        console.print("[red]Error: ANTHROPIC_API_KEY not set in environment[/red]")
        return
    run_generate(kanda, sarga, multipass, ChapterProgressLog())


@cli.command('generate-hard')
@kanda_option
@sarga_option
def generate_hard(kanda, sarga):
    """Generate the hard-question addon from the chapter's themes."""
    console.print("\n[bold cyan]Hard Question Generation[/bold cyan]\n")
    if not config.ANTHROPIC_API_KEY:
        console.print("[red]Error: ANTHROPIC_API_KEY not set in environment[/red]")
        return
    run_generate_hard(kanda, sarga, ChapterProgressLog())


@cli.command()
@kanda_option
@sarga_option
def stage(kanda, sarga):
    """Stage generated content for review."""
    chapter_key = f"{kanda}_sarga_{sarga}"
    db = Database()
    try:
        content = ContentImporter(db).load_generated(kanda, sarga)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    sheet = ReviewSheet(db)
    staged = sheet.stage_questions(chapter_key, content.questions, content.source_reference)
    if content.summary:
        sheet.stage_summary(chapter_key, content.summary, content.source_reference)

    ChapterProgressLog().record(chapter_key, "stage", "completed", questions=staged)
    print_stage_report(
        f"Staged: {chapter_key}",
        {"questions": staged, "summaries": 1 if content.summary else 0}
    )


@cli.command('review-export')
@click.option('--output', required=True, type=click.Path(dir_okay=False), help='CSV file to write')
@click.option('--kanda', default=None, help='Book identifier (with --sarga, limits the export)')
@click.option('--sarga', default=None, type=int, help='Chapter number')
def review_export(output, kanda, sarga):
    """Export review rows to CSV for editing in a spreadsheet."""
    chapter_key = f"{kanda or config.DEFAULT_KANDA}_sarga_{sarga}" if sarga is not None else None
    count = ReviewSheet(Database()).export_csv(Path(output), chapter_key)
    console.print(f"[green]✓ Exported {count} rows to {output}[/green]")


@cli.command('review-import')
@click.option('--input', 'input_path', required=True, type=click.Path(exists=True, dir_okay=False), help='Reviewed CSV')
def review_import(input_path):
    """Apply review decisions from an edited CSV."""
    sheet = ReviewSheet(Database())
    counts = sheet.import_csv(Path(input_path))
    print_stage_report("Review import", {**counts, **sheet.stats()})


@cli.command('import')
@kanda_option
@sarga_option
@click.option('--from-review', is_flag=True, help='Import only approved review rows')
@click.option('--dry-run', is_flag=True, help='Validate without writing')
@click.option('--retry/--no-retry', default=True, show_default=True, help='Retry failed writes with backoff')
def import_content(kanda, sarga, from_review, dry_run, retry):
    """Import a chapter's questions and summary into the store."""
    console.print("\n[bold cyan]Content Import[/bold cyan]\n")
    try:
        run_import(kanda, sarga, from_review, dry_run, retry, ChapterProgressLog())
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")


@cli.command('render-sql')
@kanda_option
@sarga_option
@click.option('--from-review', is_flag=True, help='Render only approved review rows')
@click.option('--output-dir', default=None, type=click.Path(file_okay=False), help='Directory for the SQL file')
def render_sql(kanda, sarga, from_review, output_dir):
    """Write INSERT statements for a chapter to a SQL file."""
    db = Database()
    importer = ContentImporter(db)
    try:
        if from_review:
            content = importer.load_approved(ReviewSheet(db), f"{kanda}_sarga_{sarga}")
        else:
            content = importer.load_generated(kanda, sarga)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    report = importer.render_sql(content, Path(output_dir) if output_dir else None)
    print_stage_report(f"SQL: {content.chapter_key}", report.counts(), report.errors)
    console.print(f"Script: [cyan]{report.sql_path}[/cyan]")


@cli.command()
@kanda_option
@sarga_option
@click.option('--dry-run', is_flag=True, help='List near-duplicates without deleting')
def cleanup(kanda, sarga, dry_run):
    """Remove near-duplicate questions already in the store."""
    report = DuplicateCleanup().run(Database(), kanda, sarga, dry_run=dry_run)
    print_stage_report(
        f"Cleanup: {report.chapter_key}{' (dry run)' if dry_run else ''}",
        {
            "scanned": report.scanned,
            "duplicate groups": report.groups,
            "to delete" if dry_run else "deleted": len(report.deleted_ids) if dry_run else report.deleted,
        }
    )


@cli.command('check-quality')
@kanda_option
@sarga_option
def check_quality(kanda, sarga):
    """Flag vague or context-free generated questions."""
    chapter_key = f"{kanda}_sarga_{sarga}"
    paths = [
        config.QUESTIONS_DIR / f"{chapter_key}_questions.json",
        config.QUESTIONS_DIR / f"{chapter_key}_hard_questions_addon.json",
    ]
    found = False
    for path in paths:
        if not path.exists():
            continue
        found = True
        report = QuestionQualityChecker.check_file(path)
        print_stage_report(
            f"Quality: {report.label}",
            {
                "questions": report.total_questions,
                "flagged": report.flagged_questions,
                "quality score %": report.quality_score,
            },
            [f"Q{issue.question_number}: {issue.problem}. {issue.suggestion}" for issue in report.issues],
            max_errors=10
        )
    if not found:
        console.print(f"[red]Error: no generated questions for {chapter_key}[/red]")


@cli.command('probe-quota')
@click.option('--concurrency', default=config.PROBE_CONCURRENCY, show_default=True, help='Simultaneous probes')
def probe_quota_command(concurrency):
    """Send a few tiny concurrent requests and report rate-limit status."""
    if not config.ANTHROPIC_API_KEY:
        console.print("[red]Error: ANTHROPIC_API_KEY not set in environment[/red]")
        return
    report = probe_quota(concurrency)
    print_stage_report("Quota probe", report.status_counts)
    for result in report.results:
        for key, value in sorted(result.rate_limit_headers.items()):
            console.print(f"  probe {result.index} {key}: {value}")
    for hint in report.hints():
        console.print(f"[yellow]{hint}[/yellow]")


@cli.command()
@kanda_option
@click.option('--start', required=True, type=int, help='First chapter')
@click.option('--end', required=True, type=int, help='Last chapter (inclusive)')
@click.option('--multipass/--standard', default=True, show_default=True, help='Generate pass by pass')
@click.option('--hard/--no-hard', default=True, show_default=True, help='Also generate hard addon questions')
@click.option('--import-content', is_flag=True, help='Import generated content without review')
@click.option('--skip-completed', is_flag=True, help='Skip steps the progress log marks completed')
def run(kanda, start, end, multipass, hard, import_content, skip_completed):
    """Run fetch and generation over a range of chapters, one at a time."""
    console.print("\n[bold cyan]Epic Content Pipeline - Batch Run[/bold cyan]\n")
    if not config.ANTHROPIC_API_KEY:
        console.print("[red]Error: ANTHROPIC_API_KEY not set in environment[/red]")
        return
    if end < start:
        console.print("[red]Error: --end must not be before --start[/red]")
        return

    progress_log = ChapterProgressLog()
    outcomes = {"chapters": 0, "succeeded": 0, "failed": 0}
    errors = []

    for index, sarga in enumerate(ProgressTracker().track_chapters(range(start, end + 1), kanda)):
        if index > 0:
            time.sleep(config.CHAPTER_DELAY)

        chapter_key = f"{kanda}_sarga_{sarga}"
        outcomes["chapters"] += 1

        def done(step):
            return skip_completed and progress_log.is_completed(chapter_key, step)

        ok = done("fetch") or run_fetch(kanda, sarga, progress_log)
        ok = ok and (done("generate") or run_generate(kanda, sarga, multipass, progress_log))
        if ok and hard and not done("hard"):
            time.sleep(config.API_CALL_DELAY)
            ok = run_generate_hard(kanda, sarga, progress_log)
        if ok and import_content and not done("import"):
            try:
                report = run_import(kanda, sarga, False, False, True, progress_log)
                ok = report.attempted == 0 or report.failed < report.attempted
            except FileNotFoundError as e:
                console.print(f"[red]Error: {e}[/red]")
                ok = False

        if ok:
            outcomes["succeeded"] += 1
        else:
            outcomes["failed"] += 1
            errors.append(f"{chapter_key} did not complete")

    print_stage_report("Batch run", outcomes, errors)


@cli.command()
def status():
    """Show per-step progress and review status."""
    progress_log = ChapterProgressLog()
    table = Table(title="Pipeline progress", header_style="bold cyan")
    table.add_column("Step")
    table.add_column("Completed", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Started", justify="right")
    for step, counts in progress_log.summary().items():
        table.add_row(step, str(counts["completed"]), str(counts["failed"]), str(counts["started"]))
    console.print(table)

    print_stage_report("Review rows", ReviewSheet(Database()).stats())


if __name__ == "__main__":
    cli()
