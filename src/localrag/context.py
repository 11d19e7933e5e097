"""
Application context.

Owns every long-lived resource: the runtime supervisor (and through it the
child process), the runtime client, the download manager, the vector store,
the file repository and the ingestion pipeline. Nothing is module-global;
callers build one context, pass it around and close it on shutdown.
"""

import logging
from typing import Optional

from documents import (
    DocumentParser,
    FileRepository,
    FileStorage,
    IngestionPipeline,
    SqliteFileRepository,
    VisionTranscriber,
)
from downloads import DownloadManager
from runtime import OllamaClient, RuntimeSupervisor
from runtime.platforms import PlatformStrategy
from vectorstore import VectorStore

from .config import AppConfig


logger = logging.getLogger(__name__)


class AppContext:
    """
    Explicitly owned application resources.

    Storage-backed components are opened on first use so that commands which
    only need the runtime never touch the database.

    Example:
        >>> with AppContext(load_config()) as context:
        ...     context.supervisor.ensure_ready()
        ...     context.pipeline.ingest(Path("notes.md"), "math")
    """

    def __init__(
        self,
        config: AppConfig,
        platform: Optional[PlatformStrategy] = None,
        client: Optional[OllamaClient] = None,
        downloader: Optional[DownloadManager] = None,
    ):
        """
        Initialize the context.

        Args:
            config: Application configuration
            platform: Platform strategy override (current OS if None)
            client: Runtime client override
            downloader: Download manager override
        """
        self.config = config
        runtime_config = config.runtime_config()

        self.client = client or OllamaClient(runtime_config)
        self.downloader = downloader or DownloadManager(config.download_config())
        self.supervisor = RuntimeSupervisor(
            runtime_config,
            platform=platform,
            client=self.client,
            downloader=self.downloader,
        )
        self.storage = FileStorage(config.files_root, reserved=config.reserved_subjects)
        self.parser = DocumentParser(
            transcriber=VisionTranscriber(self.client, model=config.vision_model),
            window_size=config.window_size,
        )

        self._vector_store: Optional[VectorStore] = None
        self._repository: Optional[FileRepository] = None
        self._pipeline: Optional[IngestionPipeline] = None

    @property
    def vector_store(self) -> VectorStore:
        if self._vector_store is None:
            self._vector_store = VectorStore(
                self.config.database_path,
                dimensions=self.config.embedding_dimensions,
            )
        return self._vector_store

    @property
    def repository(self) -> FileRepository:
        if self._repository is None:
            self._repository = SqliteFileRepository(self.config.database_path)
        return self._repository

    @property
    def pipeline(self) -> IngestionPipeline:
        if self._pipeline is None:
            self._pipeline = IngestionPipeline(
                parser=self.parser,
                storage=self.storage,
                repository=self.repository,
                vector_store=self.vector_store,
                embedder=self.client,
                config=self.config.pipeline_config(),
            )
        return self._pipeline

    def close(self, stop_runtime: bool = False) -> None:
        """
        Release storage handles and optionally stop the spawned runtime.

        Args:
            stop_runtime: Terminate the runtime child process if this context spawned it
        """
        if stop_runtime:
            self.supervisor.stop_runtime()
        if self._vector_store is not None:
            self._vector_store.close()
            self._vector_store = None
        if self._repository is not None:
            self._repository.close()
            self._repository = None
        self._pipeline = None
        logger.debug("Application context closed")

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, *args) -> None:
        self.close()
