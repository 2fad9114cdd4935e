from __future__ import annotations

import logging
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from sqlalchemy import select

from poesie_core.db.base import Base
from poesie_core.db.enums import LexemeImportMode
from poesie_core.db.models import Poem
from poesie_core.db.session import SessionLocal, engine
from poesie_core.db.store import SqlPoemStore
from poesie_core.errors import PoesieError
from poesie_core.identity import poem_id_for
from poesie_core.poems import PoemImport
from ingest_service.fetch.snapshot import snapshot_url
from ingest_service.lexicon.backfill import backfill_lexemes
from ingest_service.lexicon.csv_io import (
    LEXEME_COLUMNS,
    TRANSLATION_COLUMNS,
    export_lexemes,
    import_lexeme_rows,
    import_translation_rows,
    read_csv,
    write_csv,
)
from ingest_service.lexicon.enrich import enrich_rows, load_lexique_frequencies, load_wiktextract_subset
from ingest_service.settings import settings
from ingest_service.sources.local_files import iter_poem_files, kebab, load_poem_file, poem_from_html
from ingest_service.sync import Synchronizer

app = typer.Typer(help="Poem ingest service (import, re-tokenize, lexicon tooling).")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _synchronizer() -> Synchronizer:
    return Synchronizer(SqlPoemStore(SessionLocal))


def _poem_id(poem: str) -> uuid.UUID:
    try:
        return uuid.UUID(poem)
    except ValueError:
        return poem_id_for(poem)


def _fail(exc: PoesieError) -> typer.Exit:
    console.print(f"[red]{exc}[/red]")
    return typer.Exit(1)


@app.command("init-db")
def init_db() -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)
    console.print("[green]✓ Schema ready[/green]")


@app.command("import-file")
def import_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="A .txt or .html poem file."),
    *,
    title: str | None = typer.Option(None, help="Title (override). Inferred from the file if omitted."),
    slug: str | None = typer.Option(None, help="Slug (override). Defaults to the kebab-cased file name."),
    category: str | None = typer.Option(None, help="Category."),
    source_url: str | None = typer.Option(None, help="Where the poem was found."),
    year: int | None = typer.Option(None, help="Year of composition."),
) -> None:
    """Import one local poem file."""
    try:
        payload = load_poem_file(path, path.parent)
        payload = payload.model_copy(
            update={
                k: v
                for k, v in {
                    "title": title,
                    "slug": slug,
                    "category": category,
                    "source_url": source_url,
                    "year": year,
                }.items()
                if v is not None
            }
        )
        poem_id = _synchronizer().import_poem(payload)
    except PoesieError as exc:
        raise _fail(exc) from exc
    typer.echo(f"poem_id: {poem_id}")


@app.command("import-dir")
def import_dir(
    root: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder of .txt/.html poems."),
    *,
    dry_run: bool = typer.Option(False, "--dry-run", help="Only list what would be imported."),
) -> None:
    """
    Import every poem file below ROOT.

    The first folder below ROOT becomes the category; `index.*` files are skipped.
    A file that fails is reported and the run continues.
    """
    sync = None if dry_run else _synchronizer()
    imported = failed = 0
    for path in iter_poem_files(root):
        try:
            payload = load_poem_file(path, root)
            if sync is None:
                console.print(f"[dim]dry-run[/dim] {payload.slug} - {payload.title} ({payload.category or 'uncat'})")
                continue
            sync.import_poem(payload)
            console.print(f"Imported: {payload.slug} - {payload.title}")
            imported += 1
        except PoesieError as exc:
            console.print(f"[red]Failed: {path}[/red]\n  {exc}")
            failed += 1
    console.print(f"\n[green]imported={imported}[/green] [red]failed={failed}[/red]")
    if failed:
        raise typer.Exit(1)


@app.command("import-url")
def import_url(
    url: str,
    *,
    slug: str | None = typer.Option(None, help="Slug. Defaults to the kebab-cased last URL segment."),
    title: str | None = typer.Option(None, help="Title (override)."),
    category: str | None = typer.Option(None, help="Category."),
    year: int | None = typer.Option(None, help="Year of composition."),
) -> None:
    """
    Snapshot a poem page to `data/raw/` and import it.

    Note: requires network access at runtime.
    """
    url = "".join(url.split())
    try:
        snap = snapshot_url(url)
        page = poem_from_html(snap.text())
        payload = PoemImport(
            content=page.content,
            title=title or page.title,
            slug=slug or kebab(url.rstrip("/").rsplit("/", 1)[-1].rsplit(".", 1)[0]),
            source_url=url,
            year=year,
            category=category,
        )
        poem_id = _synchronizer().import_poem(payload)
    except PoesieError as exc:
        raise _fail(exc) from exc
    typer.echo(f"stored: {snap.raw_path}")
    typer.echo(f"poem_id: {poem_id}")


@app.command()
def reannotate(poem: str = typer.Argument(..., help="Poem id or slug.")) -> None:
    """Recompute tokens for one poem's stored lines."""
    try:
        poem_id = _synchronizer().reannotate(_poem_id(poem))
    except PoesieError as exc:
        raise _fail(exc) from exc
    typer.echo(f"poem_id: {poem_id}")


@app.command("reannotate-all")
def reannotate_all() -> None:
    """Recompute tokens for every stored poem."""
    with SessionLocal() as session:
        poem_ids = session.execute(select(Poem.poem_id).order_by(Poem.slug)).scalars().all()
    sync = _synchronizer()
    done = failed = 0
    for poem_id in poem_ids:
        try:
            sync.reannotate(poem_id)
            done += 1
        except PoesieError as exc:
            console.print(f"[red]Failed: {poem_id}[/red]\n  {exc}")
            failed += 1
    console.print(f"[green]✓ Re-tokenized {done} poems[/green] [red]failed={failed}[/red]")
    if failed:
        raise typer.Exit(1)


@app.command("lexemes-import")
def lexemes_import(
    lex: Path = typer.Option(..., exists=True, dir_okay=False, help="lexemes.csv"),
    tr: Path | None = typer.Option(None, exists=True, dir_okay=False, help="translations.csv"),
    mode: LexemeImportMode = typer.Option(LexemeImportMode.update_missing, help="Fill empty fields or overwrite."),
) -> None:
    """Load lexemes (and translations) from the CSV exchange format."""
    with SessionLocal() as session:
        lex_stats = import_lexeme_rows(session, read_csv(lex), mode=mode)
        tr_stats = import_translation_rows(session, read_csv(tr)) if tr else None
        session.commit()

    table = Table(title="Lexicon import")
    table.add_column("file")
    table.add_column("created", justify="right")
    table.add_column("updated", justify="right")
    table.add_column("skipped", justify="right")
    table.add_row(str(lex), str(lex_stats.created), str(lex_stats.updated), str(lex_stats.skipped))
    if tr_stats is not None:
        table.add_row(str(tr), str(tr_stats.created), str(tr_stats.updated), str(tr_stats.skipped))
    console.print(table)


@app.command("lexemes-export")
def lexemes_export(
    out_dir: Path = typer.Option(Path("exports"), help="Directory for lexemes.csv and translations.csv."),
) -> None:
    """Write the lexicon to the CSV exchange format."""
    with SessionLocal() as session:
        n_lex, n_tr = export_lexemes(session, out_dir / "lexemes.csv", out_dir / "translations.csv")
    console.print(f"[green]✓ Exported[/green] lexemes={n_lex} translations={n_tr} to {out_dir}")


@app.command("lexemes-backfill")
def lexemes_backfill() -> None:
    """Create empty lexemes for every token (lemma, pos) without one."""
    with SessionLocal() as session:
        created, present = backfill_lexemes(session)
        session.commit()
    console.print(f"Backfill done. created={created}, already-present={present}")


@app.command("lexemes-enrich")
def lexemes_enrich(
    src: Path = typer.Option(..., "--in", exists=True, dir_okay=False, help="lexemes.csv to enrich."),
    out: Path = typer.Option(..., help="Enriched lexemes.csv to write."),
    wiktextract: Path = typer.Option(..., exists=True, dir_okay=False, help="Wiktextract JSONL (.gz ok)."),
    tr: Path | None = typer.Option(None, help="translations.csv to write."),
    lexique: Path | None = typer.Option(None, help="Lexique table for frequency buckets."),
    lang: str = typer.Option("fr", help="Wiktextract lang_code to keep."),
    mode: LexemeImportMode = typer.Option(LexemeImportMode.update_missing, help="Fill empty fields or overwrite."),
) -> None:
    """Fill lexeme CSV fields offline from a Wiktextract dump (no database access)."""
    rows = read_csv(src)
    targets = {(r.get("lemma") or "").strip().lower() for r in rows} - {""}
    console.print("[yellow]Loading Wiktextract subset...[/yellow]")
    dump = load_wiktextract_subset(wiktextract, targets, lang_code=lang)
    frequencies = load_lexique_frequencies(lexique)
    console.print(f"  dump lemmas: {len(dump)}  lexique entries: {len(frequencies)}")

    result = enrich_rows(rows, dump, frequencies, mode=mode)
    columns = list(dict.fromkeys([*(rows[0].keys() if rows else []), *LEXEME_COLUMNS]))
    write_csv(out, columns, result.rows)
    if tr is not None:
        write_csv(tr, TRANSLATION_COLUMNS, result.translations)
    console.print(f"[green]✓ Enrichment done[/green] matched={result.matched}/{len(rows)}")


if __name__ == "__main__":
    app()
