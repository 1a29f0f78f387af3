"""Collection of files produced by an R script run.

The script registers every file it wants to keep in the ``r__file_names``
table of its schema. Only those files are collected; the working directory
may contain anything else.
"""

import logging
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

import psycopg2
import yaml

from . import PRODUCT_TAG
from .exceptions import OutputCollectionError, StorageApiError, wrap_exception
from .logging import get_logger
from .provisioning import Credentials
from .storage import FileUploadOptions, StorageApiClient

OUTPUT_FILES_TABLE = "r__file_names"
MANIFEST_SUFFIX = ".manifest"


@dataclass
class OutputFileRecord:
    """A file registered by the script: logical name and on-disk file name."""

    name: str
    value: str


@dataclass
class FileManifest:
    """Sidecar metadata describing how a produced file is stored."""

    name: str
    is_public: bool = False
    is_permanent: bool = True
    notify: bool = False
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def upload_options(self) -> FileUploadOptions:
        return FileUploadOptions(
            is_public=self.is_public,
            is_permanent=self.is_permanent,
            notify=self.notify,
            tags=list(self.tags),
        )


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def build_tags(
    file_tags: List[str], record_name: str, module_name: Optional[str] = None
) -> List[str]:
    """Configured file tags, the logical file name, the script module and the product tag."""
    tags = [tag.strip() for tag in file_tags] + [record_name]
    if module_name:
        tags.append(module_name)
    return tags + [PRODUCT_TAG]


def write_manifest(file_path: Union[str, Path], manifest: FileManifest) -> Path:
    """Write the YAML manifest next to the file it describes."""
    file_path = Path(file_path)
    manifest_path = file_path.with_name(file_path.name + MANIFEST_SUFFIX)
    with open(manifest_path, "w") as f:
        yaml.safe_dump(manifest.to_dict(), f, default_flow_style=False)
    return manifest_path


class ResultCollector:
    """Moves or uploads the files an R script registered."""

    def __init__(
        self,
        credentials: Credentials,
        working_dir: Union[str, Path],
        file_tags: Optional[List[str]] = None,
        module_name: Optional[str] = None,
        connection_factory: Optional[Callable[[], Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the collector.

        Args:
            credentials: Warehouse credentials of the run
            working_dir: Working directory the script wrote its files to
            file_tags: Tags configured for the job
            module_name: Name of the script module that ran, if any
            connection_factory: Optional factory returning a DB-API connection
            logger: Optional logger (defaults to the runner logger)
        """
        self.credentials = credentials
        self.working_dir = Path(working_dir)
        self.file_tags = list(file_tags or [])
        self.module_name = module_name
        self._connection_factory = connection_factory or self._connect
        self.logger = logger or get_logger()

    def _connect(self) -> Any:
        return psycopg2.connect(
            host=self.credentials.hostname,
            port=self.credentials.port,
            dbname=self.credentials.db,
            user=self.credentials.user,
            password=self.credentials.password,
        )

    @property
    def table_name(self) -> str:
        return (
            f"{quote_identifier(self.credentials.schema_name)}."
            f"{quote_identifier(OUTPUT_FILES_TABLE)}"
        )

    def fetch_records(self, conn: Any) -> List[OutputFileRecord]:
        """Read the registered output files in query order."""
        with conn.cursor() as cursor:
            cursor.execute(f"SELECT name, value FROM {self.table_name};")
            rows = cursor.fetchall()
        return [OutputFileRecord(name=row[0], value=row[1]) for row in rows]

    def manifest_for(self, record: OutputFileRecord) -> FileManifest:
        return FileManifest(
            name=record.value,
            tags=build_tags(self.file_tags, record.name, self.module_name),
        )

    def collect_to_directory(self, out_dir: Union[str, Path]) -> List[Path]:
        """Move every registered file to out_dir and write its manifest.

        Returns:
            Paths of the moved files

        Raises:
            OutputCollectionError: If the query or any move fails
        """
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        moved: List[Path] = []

        conn = self._open()
        try:
            records = self._fetch(conn)
        finally:
            conn.close()

        for record in records:
            self.logger.debug(f"I'm creating manifest for file: {record.value}")
            target = out_dir / record.value
            try:
                shutil.move(str(self.working_dir / record.value), str(target))
                write_manifest(target, self.manifest_for(record))
            except OSError as e:
                error = wrap_exception(
                    e, OutputCollectionError, f"Cannot store output file {record.value}: {e}"
                )
                error.details.update(name=record.name, file=record.value)
                raise error from e
            moved.append(target)

        return moved

    def collect_to_storage(self, storage: StorageApiClient) -> List[int]:
        """Upload every registered file to Storage API.

        The assigned file ID is written back to the output files table.

        Returns:
            IDs of the uploaded files

        Raises:
            OutputCollectionError: If the query, an upload or an update fails
        """
        update_sql = (
            f"UPDATE {self.table_name} SET id = %s WHERE name = %s AND value = %s;"
        )
        file_ids: List[int] = []

        conn = self._open()
        try:
            for record in self._fetch(conn):
                manifest = self.manifest_for(record)
                try:
                    file_id = storage.upload_file(
                        self.working_dir / record.value, manifest.upload_options()
                    )
                except StorageApiError as e:
                    raise OutputCollectionError(
                        f"Cannot upload output file {record.value}: {e.message}",
                        details={"name": record.name, "file": record.value},
                    ) from e

                try:
                    with conn.cursor() as cursor:
                        cursor.execute(update_sql, (file_id, record.name, record.value))
                    conn.commit()
                except psycopg2.Error as e:
                    raise OutputCollectionError(
                        f"Cannot store ID of output file {record.value}: {e}"
                    ) from e
                self.logger.debug(f"File {record.value} uploaded with ID {file_id}")
                file_ids.append(file_id)
        finally:
            conn.close()

        return file_ids

    def _open(self) -> Any:
        try:
            return self._connection_factory()
        except psycopg2.Error as e:
            raise OutputCollectionError(
                f"Cannot connect to Redshift database: {e}"
            ) from e

    def _fetch(self, conn: Any) -> List[OutputFileRecord]:
        try:
            return self.fetch_records(conn)
        except psycopg2.Error as e:
            raise OutputCollectionError(
                f"Cannot read list of output files from {self.table_name}: {e}"
            ) from e
