#!/usr/bin/env python3
import argparse
import logging
import sys
from pathlib import Path

from docrag.app import build_services, delete_document, retrieve
from docrag.config import load_config, resolve_embedding_configuration
from docrag.errors import RAGError
from docrag.lifecycle.models import Document, DocumentStatus
from docrag.logging_utils import setup_logging
from docrag.retrieve.analysis import document_stats, system_health
from docrag.utils.output import write_output

logger = logging.getLogger(__name__)

SUPPORTED = {".md", ".markdown", ".txt", ".rst"}


def _collect(path: Path):
    if path.is_file():
        return [path]
    return sorted(f for f in path.rglob("*") if f.is_file() and f.suffix.lower() in SUPPORTED)


def _load_document(svc, f: Path, root: Path) -> Document:
    doc_id = f.relative_to(root).as_posix() if f != root else f.name
    content = f.read_text(encoding="utf-8", errors="replace")
    doc = svc.store.get(doc_id)
    if doc is None:
        doc = Document(id=doc_id, title=f.stem, content=content, metadata={"path": str(f)})
    else:
        doc.title, doc.content, doc.size = f.stem, content, 0
        doc.metadata["path"] = str(f)
    # re-derive size for edited content
    return Document.model_validate(doc.model_dump())


def cmd_ingest(svc, args) -> int:
    root = Path(args.path)
    if not root.exists():
        print(f"No such file or directory: {root}", file=sys.stderr)
        return 1
    files = _collect(root)
    if not files:
        print(f"No supported files under {root} ({', '.join(sorted(SUPPORTED))})")
        return 0
    base = root if root.is_dir() else root.parent
    docs = [_load_document(svc, f, base) for f in files]
    for d in docs:
        svc.store.save(d)
    logger.info("Processing %d documents", len(docs))

    futures = [svc.manager.submit(d) for d in docs]
    failed = 0
    for fut in futures:
        res = fut.result()
        if res.ok:
            print(f"[ready]  {res.document_id} | {res.chunk_count} chunks | {res.strategy}")
        else:
            failed += 1
            print(f"[failed] {res.document_id} | {res.error}")
    print(f"Ingest complete. Documents: {len(docs)}, failed: {failed}")
    return 2 if failed else 0


def cmd_delete(svc, args) -> int:
    doc = svc.store.get(args.id)
    if doc is None:
        print(f"Unknown document: {args.id}", file=sys.stderr)
        return 1
    n = delete_document(svc, doc)
    print(f"Deleted {args.id} ({n} points)")
    return 0


def cmd_query(svc, args) -> int:
    ids = [s.strip() for s in args.docs.split(",") if s.strip()] if args.docs else None
    scope = svc.store.list(ids)
    res = retrieve(svc, args.question, scope, limit=args.limit, mode=args.mode)

    if args.out or args.save:
        target = write_output(args.question, res, out_path=args.out, fmt=args.format, save_dir=args.save)
        print(f"[saved] {target}")

    print("\n=== DOCUMENTS ===")
    if not res.documents_used:
        print(f"(none: {res.reason})")
    for d in res.documents_used:
        print(f"- {d.title} | score {d.score:.3f}")
    if args.show_prompt:
        print("\n=== PROMPT ===")
        print(res.prompt)
    return 0


def cmd_models(svc, args) -> int:
    ecfg = resolve_embedding_configuration(svc.settings, svc.cfg.providers)
    embedder = svc.embedders.get(ecfg.provider, ecfg.provider_config)
    print(f"provider={ecfg.provider} model={ecfg.model} vector_size={ecfg.vector_size}")
    for m in embedder.list_models():
        print(f"- {m}")
    return 0


def cmd_health(svc, args) -> int:
    h = system_health(svc.store.list(), indexed_points=svc.index.count())
    print(
        f"documents={h.total_documents} ready={h.ready_documents} pending={h.pending_documents} "
        f"processing={h.processing_documents} failed={h.failed_documents}"
    )
    print(f"chunks={h.total_chunks} avg_per_doc={h.avg_chunks_per_doc:.1f} indexed_points={h.indexed_points}")
    for a in h.recommended_actions:
        print(f"- {a}")
    return 0


def cmd_stats(svc, args) -> int:
    docs = svc.store.list()
    s = document_stats(docs)
    print(
        f"ready={s['document_count']} total={s['total_documents']} chunks={s['total_chunks']}"
    )
    for d in docs:
        line = f"- {d.id} | {d.status.value} | {d.chunk_count} chunks"
        if d.status == DocumentStatus.FAILED and d.error:
            line += f" | {d.error}"
        print(line)
    return 0


COMMANDS = {
    "ingest": cmd_ingest,
    "delete": cmd_delete,
    "query": cmd_query,
    "models": cmd_models,
    "health": cmd_health,
    "stats": cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", type=str, default=None, help="Config file (default: $DOCRAG_CONFIG or config.yaml)"
    )

    parser = argparse.ArgumentParser(
        prog="docrag",
        description="Document ingestion and retrieval augmentation over a vector index.",
    )
    # Global logging flags
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logs (to stderr).")
    parser.add_argument("--quiet", "-q", action="store_true", help="Reduce logs to WARN and above.")
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON lines (stderr).")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_ing = sub.add_parser("ingest", parents=[common], help="Chunk, embed and index a file or folder")
    p_ing.add_argument("path", type=str, help="File or folder of .md/.txt documents")

    p_del = sub.add_parser("delete", parents=[common], help="Remove a document and its indexed chunks")
    p_del.add_argument("id", type=str, help="Document id (path relative to the ingest root)")

    p_q = sub.add_parser("query", parents=[common], help="Build the augmented prompt for a question")
    p_q.add_argument("question", type=str, help="Your question string")
    p_q.add_argument("--docs", type=str, default="", help="Comma-separated document ids (default: all)")
    p_q.add_argument("--limit", type=int, default=0, help="Candidates to request (default: dynamic)")
    p_q.add_argument("--mode", choices=["semantic", "hybrid"], default=None, help="Scoring mode")
    p_q.add_argument("--show-prompt", action="store_true", help="Print the final prompt")
    p_q.add_argument("--out", type=str, default=None, help="Write result to a file (format from extension)")
    p_q.add_argument("--format", type=str, default=None, choices=["json", "md", "txt"])
    p_q.add_argument("--save", type=str, default=None, help="Directory to auto-save result")

    sub.add_parser("models", parents=[common], help="List models of the active embedding provider")
    sub.add_parser("health", parents=[common], help="Document and index health report")
    sub.add_parser("stats", parents=[common], help="Per-document status")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # ----- logging setup -----
    if args.verbose and args.quiet:
        print("Cannot use --verbose and --quiet together.", file=sys.stderr)
        return 2
    if args.verbose:
        setup_logging(level="DEBUG", json_logs=args.log_json)
    elif args.quiet:
        setup_logging(level="WARNING", json_logs=args.log_json)
    else:
        setup_logging(level=None, json_logs=args.log_json)

    logger.debug("CLI args parsed: %s", vars(args))

    svc = None
    try:
        cfg = load_config(args.config)
        svc = build_services(cfg)
        return COMMANDS[args.cmd](svc, args)
    except RAGError as e:
        logger.error("%s failed: %s", args.cmd, e)
        return 2
    finally:
        if svc is not None:
            svc.close()


if __name__ == "__main__":
    sys.exit(main())
