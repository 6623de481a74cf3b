#!/usr/bin/env python3
# PYTHON_ARGCOMPLETE_OK
"""
Command-line interface for the vocabulary browser
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import argcomplete

from ._version import __version__
from .cache import FileCache, NullCache
from .config import Config
from .registry import VocabularyNotFoundError, VocabularyRegistry, load_registry
from .search import SearchOrchestrator
from .store import BackendError


def _load_registry(config: Config, vocabularies: Path | None = None) -> VocabularyRegistry:
    cache = FileCache(config.cache_dir, ttl=config.cache_ttl) if config.cache_enabled else NullCache()
    return load_registry(
        vocabularies or config.vocabularies_file,
        cache=cache,
        default_endpoint=config.sparql_endpoint,
        default_dialect=config.sparql_dialect,
        timeout=config.sparql_timeout,
    )


def _orchestrator(config: Config, vocabularies: Path | None = None) -> SearchOrchestrator:
    return SearchOrchestrator(
        _load_registry(config, vocabularies),
        search_limit=config.search_limit,
        breadcrumb_depth=config.breadcrumb_depth,
        info_limit=config.search_info_limit,
    )


def config_command(config: Config, show_path: bool = False) -> int:
    """Show configuration information."""
    if show_path:
        print(config.path if config.path else "No configuration file found")
        return 0

    if config.path:
        print(f"# Configuration loaded from: {config.path}")
    else:
        print("# No configuration file found, showing defaults")
    print()
    print(json.dumps(config.data, indent=2))
    return 0


def vocabularies_command(config: Config, flat: bool = False, lang: str | None = None,
                         vocabularies: Path | None = None) -> int:
    """List configured vocabularies."""
    try:
        registry = _load_registry(config, vocabularies)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    if flat:
        for voc in registry.vocabulary_list(categories=False):
            print(f"{voc.id:15} {voc.title}")
        return 0

    for title, vocs in registry.vocabulary_list(categories=True, lang=lang or config.lang).items():
        print(f"📚 {title}")
        for voc in vocs:
            print(f"   {voc.id:15} {voc.title}")
    return 0


def search_command(
    config: Config,
    term: str,
    vocab_ids: list[str] | None = None,
    lang: str | None = None,
    type_: str | None = None,
    parent: str | None = None,
    group: str | None = None,
    offset: int = 0,
    limit: int | None = None,
    info: bool = False,
    ui_lang: str | None = None,
    as_json: bool = False,
    vocabularies: Path | None = None,
) -> int:
    """Search concepts and print the hits."""
    try:
        orchestrator = _orchestrator(config, vocabularies)
        if info:
            results = orchestrator.search_concepts_and_info(
                term, vocab_ids, lang, offset=offset,
                limit=limit, ui_lang=ui_lang,
            )
        else:
            results = orchestrator.search_concepts(
                term, vocab_ids, lang, type_=type_, parent=parent, group=group,
                offset=offset, limit=limit,
            )
    except (FileNotFoundError, ValueError, VocabularyNotFoundError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except BackendError as e:
        print(f"❌ Search failed: {e}", file=sys.stderr)
        return 1

    if as_json:
        print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
        return 0

    if not results:
        print(f"No concepts found for '{term}'")
        return 0

    registry = orchestrator.registry
    for result in results:
        if info:
            label = result.get_label(lang or ui_lang)
            line = f"{registry.shorten_uri(result.uri)}  {label}"
            if result.found_by_type:
                line += f"  [{result.found_by_type}: {result.found_by}]"
        else:
            line = f"{result.vocab:10} {registry.shorten_uri(result.uri)}  {result.pref_label}"
            if result.alt_label:
                line += f"  (alt: {result.alt_label})"
            if result.exvocab:
                line += f"  [from {result.exvocab}]"
        print(line)
    return 0


def breadcrumbs_command(config: Config, uri: str, vocab_id: str, lang: str | None = None,
                        as_json: bool = False, vocabularies: Path | None = None) -> int:
    """Print the breadcrumb paths of a concept."""
    try:
        crumbs = _orchestrator(config, vocabularies).get_breadcrumbs(vocab_id, uri, lang)
    except (FileNotFoundError, ValueError, VocabularyNotFoundError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except BackendError as e:
        print(f"❌ Breadcrumb query failed: {e}", file=sys.stderr)
        return 1

    if as_json:
        print(json.dumps(crumbs.to_dict(), indent=2, ensure_ascii=False))
        return 0

    if not crumbs.paths:
        print(f"No hierarchy found for {uri}")
        return 0
    for path, hidden in zip(crumbs.paths, crumbs.combined):
        print(" > ".join(crumb.label or crumb.uri for crumb in path))
        if hidden:
            print("   ... = " + " > ".join(c.hidden_label or c.uri for c in hidden))
    return 0


def cache_command(config: Config, action: str) -> int:
    """Clear or inspect the configuration cache."""
    cache = FileCache(config.cache_dir, ttl=config.cache_ttl)
    if action == "clear":
        count = cache.clear()
        print(f"🗑️  Deleted {count} cache files from {cache.cache_dir}")
    else:
        stats = cache.stats()
        print(f"Cache directory: {cache.cache_dir}")
        print(f"Entries: {stats['entries']} ({stats['bytes']} bytes)")
    return 0


def api_command(config: Config, port: int, host: str) -> int:
    """Start the JSON API server."""
    try:
        import uvicorn

        from . import api_server
    except ImportError as e:
        print(f"❌ Missing required package: {e}")
        print("\nInstall API server dependencies:")
        print("  pip install fastapi uvicorn")
        return 1

    try:
        api_server.config = config
        api_server.orchestrator = _orchestrator(config)
        api_server.registry = api_server.orchestrator.registry
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print("🚀 Starting Vocabulary Browser API...")
    print(f"📚 {len(api_server.registry)} vocabularies from {config.vocabularies_file}")
    print(f"🌐 Server will run at: http://{host}:{port}")
    print(f"🔎 Search: http://{host}:{port}/api/search?q=...")
    print("Press Ctrl+C to stop\n")

    try:
        uvicorn.run(api_server.app, host=host, port=port, log_level="info")
    except KeyboardInterrupt:
        print("\n\n👋 Server stopped")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser_cli = argparse.ArgumentParser(
        description="Vocabulary Browser - search SKOS vocabularies over SPARQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search one vocabulary
  vocab-browser search "cat*" --vocab yso --lang en

  # Search all vocabularies and show concept details
  vocab-browser search "cat*" --info --ui-lang fi

  # Show the hierarchy above a concept
  vocab-browser breadcrumbs http://www.yso.fi/onto/yso/p864 --vocab yso

  # Start the JSON API
  vocab-browser api
        """
    )
    parser_cli.add_argument('--version', '-V', action='version', version=f'%(prog)s {__version__}')
    parser_cli.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    parser_cli.add_argument('--vocabularies', type=Path,
                            help='Vocabulary configuration file (default: from config)')

    subparsers = parser_cli.add_subparsers(dest='command', help='Command to run')

    config_parser = subparsers.add_parser('config', help='Show configuration')
    config_parser.add_argument('--path', action='store_true', help='Show config file path')

    vocabs_parser = subparsers.add_parser('vocabularies', help='List configured vocabularies')
    vocabs_parser.add_argument('--flat', action='store_true', help='Do not group by category')
    vocabs_parser.add_argument('--lang', help='Language for category titles')

    search_parser = subparsers.add_parser('search', help='Search concepts by label')
    search_parser.add_argument('term', help="Search term ('*' is a wildcard)")
    search_parser.add_argument('--vocab', action='append', dest='vocab_ids',
                               help='Vocabulary id (repeat for several, omit for all)')
    search_parser.add_argument('--lang', help='Label language')
    search_parser.add_argument('--type', dest='type_', help='Concept type (default skos:Concept)')
    search_parser.add_argument('--parent', help='Only concepts below this concept URI')
    search_parser.add_argument('--group', help='Only members of this group URI')
    search_parser.add_argument('--offset', type=int, default=0, help='Result offset')
    search_parser.add_argument('--limit', type=int, help='Maximum number of results')
    search_parser.add_argument('--info', action='store_true', help='Fetch concept details')
    search_parser.add_argument('--ui-lang', help='Mark hits found through other languages')
    search_parser.add_argument('--json', action='store_true', dest='as_json', help='Output JSON')

    crumbs_parser = subparsers.add_parser('breadcrumbs', help='Show hierarchy paths of a concept')
    crumbs_parser.add_argument('uri', help='Concept URI')
    crumbs_parser.add_argument('--vocab', required=True, help='Vocabulary id')
    crumbs_parser.add_argument('--lang', help='Label language')
    crumbs_parser.add_argument('--json', action='store_true', dest='as_json', help='Output JSON')

    cache_parser = subparsers.add_parser('cache', help='Manage the configuration cache')
    cache_parser.add_argument('action', choices=['clear', 'stats'], help='Cache action')

    api_parser = subparsers.add_parser('api', help='Start the JSON API server')
    api_parser.add_argument('--port', type=int, help='Port (default: from config, 8765)')
    api_parser.add_argument('--host', help='Host (default: from config, 127.0.0.1)')

    return parser_cli


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    config = Config()
    parser_cli = build_parser()

    # Enable shell tab completion
    argcomplete.autocomplete(parser_cli)

    args = parser_cli.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == 'config':
        return config_command(config, show_path=args.path)
    elif args.command == 'vocabularies':
        return vocabularies_command(config, flat=args.flat, lang=args.lang,
                                    vocabularies=args.vocabularies)
    elif args.command == 'search':
        return search_command(
            config,
            args.term,
            vocab_ids=args.vocab_ids,
            lang=args.lang,
            type_=args.type_,
            parent=args.parent,
            group=args.group,
            offset=args.offset,
            limit=args.limit,
            info=args.info,
            ui_lang=args.ui_lang,
            as_json=args.as_json,
            vocabularies=args.vocabularies,
        )
    elif args.command == 'breadcrumbs':
        return breadcrumbs_command(config, args.uri, args.vocab, lang=args.lang,
                                   as_json=args.as_json, vocabularies=args.vocabularies)
    elif args.command == 'cache':
        return cache_command(config, args.action)
    elif args.command == 'api':
        port = args.port if args.port is not None else config.api_port
        host = args.host if args.host is not None else config.api_host
        return api_command(config, port, host)
    else:
        parser_cli.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
