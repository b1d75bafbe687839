from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from blog_archive_scraper.cache import Cache, JsonFileCache
from blog_archive_scraper.codec import RecordSetCodec, serialized_size
from blog_archive_scraper.config import Config, load_config
from blog_archive_scraper.discover import UrlDiscoverer
from blog_archive_scraper.errors import DiscoveryEmptyError, ExtractionShortfall, FetchError, ImportInputError, PersistenceSizeError
from blog_archive_scraper.extract import extract
from blog_archive_scraper.http import FetchResponse, open_client
from blog_archive_scraper.merge import DeletionSet, identity_key, merge
from blog_archive_scraper.orchestrator import run_import_batch
from blog_archive_scraper.rss import parse_datetime
from blog_archive_scraper.storage import DocumentStore, FileDocumentStore, PutResult, to_export_csv
from blog_archive_scraper.types import ArticleRecord, DiscoveredUrl, ImportBatch, ImportSummary
from blog_archive_scraper.urls import canonicalize_url, is_valid_seed


logger = logging.getLogger(__name__)


MAX_ITEMS_LIMIT = 100
MAX_ERRORS_REPORTED = 10


class PageClient(Protocol):
    async def fetch(self, url: str) -> FetchResponse: ...

    async def get_text(self, url: str) -> Optional[str]: ...


def clamp_max_items(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError) as exc:
        raise ImportInputError(f"max_items must be an integer, got {value!r}") from exc
    return max(1, min(MAX_ITEMS_LIMIT, n))


def slash_variant(url: str) -> str:
    return url.rstrip("/") if url.endswith("/") else url + "/"


async def fetch_page(client: PageClient, url: str) -> FetchResponse:
    """GET ``url``; on 404 try once more with the trailing slash toggled."""

    try:
        return await client.fetch(url)
    except FetchError as exc:
        if exc.status != 404:
            raise
        alt = slash_variant(url)
        logger.debug("404 for %s, trying %s", url, alt)
        try:
            return await client.fetch(alt)
        except FetchError as alt_exc:
            if alt_exc.status == 404:
                raise exc from None
            raise


def resolve_key(value: str) -> str:
    """Accept an identity key or a bare article URL."""

    value = (value or "").strip()
    if value.startswith(("platform:", "url:", "content:")):
        return value
    if is_valid_seed(value):
        return f"url:{canonicalize_url(value)}"
    raise ImportInputError(f"not an identity key or URL: {value!r}")


class Importer:
    def __init__(
        self,
        cfg: Config,
        store: DocumentStore,
        client: Optional[PageClient] = None,
        *,
        cache: Optional[Cache] = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.client = client
        self.codec = RecordSetCodec(cfg.chunk_bytes)
        self.cache = cache

    def _discoverer(self) -> UrlDiscoverer:
        if self.client is None:
            raise RuntimeError("importing needs an HTTP client")
        return UrlDiscoverer(
            self.client,
            settings=self.cfg.section("discovery"),
            cache=self.cache,
            stale_after=self.cfg.cache_display_max_age,
        )

    @property
    def records_key(self) -> str:
        return f"{self.cfg.dataset}/records"

    @property
    def metadata_key(self) -> str:
        return f"{self.cfg.dataset}/metadata"

    @property
    def deleted_key(self) -> str:
        return f"{self.cfg.dataset}/deleted"

    # --- persisted state ------------------------------------------------------

    def _load_all(self) -> list[ArticleRecord]:
        return self.codec.decode(self.store.get(self.records_key))

    def load_deleted(self) -> DeletionSet:
        doc = self.store.get(self.deleted_key) or {}
        return DeletionSet.from_iterable(doc.get("keys") or [])

    def _load_metadata(self) -> dict[str, Any]:
        doc = self.store.get(self.metadata_key) or {}
        items = doc.get("items")
        return dict(items) if isinstance(items, dict) else {}

    def _put(self, key: str, document: dict[str, Any]) -> None:
        limit = self.cfg.document_limit_bytes
        if self.store.put(key, document, limit) is PutResult.SIZE_EXCEEDED:
            size = sum(len(v.encode("utf-8")) for v in document.values() if isinstance(v, str))
            raise PersistenceSizeError(key, size, limit)

    def load_records(self) -> list[ArticleRecord]:
        deleted = self.load_deleted()
        return [r for r in self._load_all() if identity_key(r) not in deleted]

    def export_csv(self) -> str:
        return to_export_csv(self.load_records())

    def mark_deleted(self, key: str) -> bool:
        key = resolve_key(key)
        deleted = self.load_deleted()
        added = deleted.add(key)
        if added:
            self._put(self.deleted_key, {"keys": deleted.to_list()})
            logger.info("marked %s as deleted", key)
        return added

    # --- import ---------------------------------------------------------------

    def _record_from_page(self, item: DiscoveredUrl, response: FetchResponse) -> ArticleRecord:
        fields = extract(response.text, url=item.url)
        if fields.is_empty:
            raise ExtractionShortfall(item.url)

        published_at = fields.published_at
        inferred = False
        if not published_at:
            signal = parse_datetime(item.recency_signal)
            if signal is not None:
                published_at = signal.date().isoformat()
        if not published_at and bool(self.cfg.section("import").get("fallback_date_to_now", False)):
            published_at = datetime.now(timezone.utc).date().isoformat()
            inferred = True

        return ArticleRecord(
            source_url=canonicalize_url(item.url),
            title=fields.title or (item.title or ""),
            body=fields.body,
            published_at=published_at,
            category=fields.category,
            tags=fields.tags,
            date_is_inferred=inferred,
        )

    async def _fetch_record(self, item: DiscoveredUrl) -> ArticleRecord:
        if self.client is None:
            raise RuntimeError("importing needs an HTTP client")
        response = await fetch_page(self.client, item.url)
        return self._record_from_page(item, response)

    async def import_from_url(self, seed_url: str, max_items: Any = None, *, force_refresh: bool = False) -> ImportSummary:
        if not is_valid_seed(seed_url):
            raise ImportInputError(f"invalid seed URL: {seed_url!r}")
        import_cfg = self.cfg.section("import")
        limit = clamp_max_items(import_cfg["max_items"] if max_items is None else max_items)
        per_run = min(limit, int(import_cfg["max_items_per_run"]))

        existing = self._load_all()
        deleted = self.load_deleted()
        metadata = self._load_metadata()

        discovered = await self._discoverer().discover(seed_url, per_run, force_refresh=force_refresh)
        discovered = [d for d in discovered if f"url:{canonicalize_url(d.url)}" not in deleted]
        if not discovered:
            raise DiscoveryEmptyError(seed_url)
        logger.info("discovered %d article URLs from %s", len(discovered), seed_url)

        batch = ImportBatch(urls=discovered[:per_run], byte_budget=self.cfg.max_dataset_bytes)
        existing_size = serialized_size(existing)

        def size_of(succeeded: list[ArticleRecord]) -> int:
            return existing_size + serialized_size(succeeded)

        result = await run_import_batch(batch, self._fetch_record, self.cfg, size_of=size_of)

        fetched_at = datetime.now(timezone.utc).isoformat()
        vias = {canonicalize_url(d.url): d.via for d in batch.urls}
        for r in result.succeeded:
            metadata[identity_key(r)] = {"fetchedAt": fetched_at, "via": vias.get(r.source_url, "")}

        content_class = str(import_cfg.get("content_class", "article"))
        merged = merge(existing, result.succeeded, deleted=deleted, cap=self.cfg.cap_for(content_class), metadata=metadata)
        if merged.trimmed_keys:
            logger.info("trimmed %d oldest records over the %s cap", len(merged.trimmed_keys), content_class)

        real_failures = [f for f in result.failed if f.reason != "budget_skipped"]
        summary = ImportSummary(
            records_imported=len(result.succeeded),
            records_failed=len(real_failures),
            truncated=result.truncated,
            skipped=result.skipped,
            errors=[f.describe() for f in real_failures[:MAX_ERRORS_REPORTED]],
            records=merged.records,
        )

        try:
            self._put(self.records_key, self.codec.encode(merged.records))
            self._put(self.metadata_key, {"items": merged.metadata})
        except PersistenceSizeError as exc:
            logger.warning("%s", exc)
            summary.persisted = False
            summary.persistence_error = str(exc)

        logger.info(
            "import from %s: %d imported, %d failed, %d skipped, %d records stored",
            seed_url,
            summary.records_imported,
            summary.records_failed,
            summary.skipped,
            len(merged.records),
        )
        return summary

    async def preview(
        self,
        seed_url: str,
        max_items: Any = None,
        *,
        force_refresh: bool = False,
        fetch_titles: bool = True,
    ) -> list[DiscoveredUrl]:
        """Discovered URLs with their titles; nothing is stored.

        Pages are fetched only for URLs that discovery left without a title.
        """

        if not is_valid_seed(seed_url):
            raise ImportInputError(f"invalid seed URL: {seed_url!r}")
        import_cfg = self.cfg.section("import")
        limit = clamp_max_items(import_cfg["max_items"] if max_items is None else max_items)

        discovered = await self._discoverer().discover(seed_url, limit, force_refresh=force_refresh)
        untitled = [d for d in discovered if not d.title]
        if not fetch_titles or not untitled:
            return discovered

        batch = ImportBatch(urls=untitled, byte_budget=self.cfg.max_dataset_bytes)
        result = await run_import_batch(batch, self._fetch_record, self.cfg)
        titles = {r.source_url: r.title for r in result.succeeded if r.title}
        return [d if d.title else replace(d, title=titles.get(d.url)) for d in discovered]


def open_store(cfg: Config) -> FileDocumentStore:
    return FileDocumentStore(cfg.output_dir)


def open_cache(cfg: Config) -> Optional[Cache]:
    if not bool(cfg.section("cache").get("enabled", True)):
        return None
    return JsonFileCache(cfg.cache_path)


async def run_import(
    config_path: str | None,
    seed_url: str,
    max_items: int | None = None,
    *,
    force_refresh: bool = False,
) -> ImportSummary:
    cfg = load_config(config_path)
    async with open_client(cfg) as client:
        importer = Importer(cfg, open_store(cfg), client, cache=open_cache(cfg))
        return await importer.import_from_url(seed_url, max_items, force_refresh=force_refresh)


async def run_preview(
    config_path: str | None,
    seed_url: str,
    max_items: int | None = None,
    *,
    force_refresh: bool = False,
    fetch_titles: bool = True,
) -> list[DiscoveredUrl]:
    cfg = load_config(config_path)
    async with open_client(cfg) as client:
        importer = Importer(cfg, open_store(cfg), client, cache=open_cache(cfg))
        return await importer.preview(seed_url, max_items, force_refresh=force_refresh, fetch_titles=fetch_titles)
