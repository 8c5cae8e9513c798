"""
api.py - REST API for generating and normalizing changelogs
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import pyarrow as pa
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from changelog_engine.batch.windowed_normalizer import WindowedChangelogNormalizer
from changelog_engine.config import NORMALIZATION_MODES, ChangelogConfig, get_config
from changelog_engine.generator import ChangesGenerator, parse_identifier_columns
from changelog_engine.sources.changelog_source import ArrowChangelogSource, ChangelogSource
from changelog_engine.streaming.normalizer import StreamingChangelogNormalizer, sort_for_streaming

logger = logging.getLogger(__name__)


# Pydantic models for API requests/responses
class GenerateChangesRequest(BaseModel):
    """Pydantic model for a changelog generation request"""
    table: str
    start_snapshot_id_exclusive: Optional[int] = None
    end_snapshot_id_inclusive: Optional[int] = None
    start_timestamp: Optional[Union[datetime, int]] = None
    end_timestamp: Optional[Union[datetime, int]] = None
    identifier_columns: Optional[Union[str, List[str]]] = None
    table_change_view: Optional[str] = None
    mode: Optional[str] = None


class NormalizeRequest(BaseModel):
    """Pydantic model for normalizing inline change rows"""
    rows: List[Dict[str, Any]]
    identifier_columns: Union[str, List[str]]
    mode: Optional[str] = None
    presorted: bool = False


class APIResponse(BaseModel):
    """Base API response model"""
    status: str
    data: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ChangelogAPI:
    """REST API over a ChangesGenerator"""

    def __init__(self, generator: ChangesGenerator):
        self.generator = generator
        self.config: ChangelogConfig = generator.config
        self.app = FastAPI(title="Changelog Engine API")
        self._setup_routes()

    def _normalize_rows(self, request: NormalizeRequest) -> List[Dict[str, Any]]:
        config = self.config
        mode = request.mode or config.default_mode
        if mode not in NORMALIZATION_MODES:
            raise ValueError(f"Unknown normalization mode: {mode}")
        identifiers = parse_identifier_columns(request.identifier_columns)
        if not identifiers:
            return request.rows
        table = pa.Table.from_pylist(request.rows)

        if mode == "streaming":
            if not request.presorted:
                table = sort_for_streaming(
                    table,
                    identifiers,
                    change_type_column=config.change_type_column,
                    ordinal_column=config.change_ordinal_column,
                )
            normalizer = StreamingChangelogNormalizer(
                identifiers,
                change_type_column=config.change_type_column,
                batch_size=config.batch_size,
            )
            return normalizer.normalize(table).to_pylist()

        normalizer = WindowedChangelogNormalizer(
            identifiers,
            change_type_column=config.change_type_column,
            change_ordinal_column=config.change_ordinal_column,
        )
        return self.generator.backend.to_pyarrow(normalizer.build(table)).to_pylist()

    def _setup_routes(self):
        """Setup all API routes"""

        @self.app.get("/health")
        async def health_check():
            return {"status": "healthy", "service": "changelog-engine", "version": "1.0"}

        @self.app.post("/changes/generate")
        async def generate_endpoint(request: GenerateChangesRequest):
            try:
                view_name = await self.generator.generate_async(
                    request.table,
                    start_snapshot_id=request.start_snapshot_id_exclusive,
                    end_snapshot_id=request.end_snapshot_id_inclusive,
                    start_timestamp=request.start_timestamp,
                    end_timestamp=request.end_timestamp,
                    identifier_columns=request.identifier_columns,
                    view_name=request.table_change_view,
                    mode=request.mode,
                )
                return APIResponse(status="success", data={"view_name": view_name})
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            except Exception as e:
                logger.exception("Changelog generation failed for %s", request.table)
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post("/changes/normalize")
        async def normalize_endpoint(request: NormalizeRequest):
            try:
                loop = asyncio.get_running_loop()
                rows = await loop.run_in_executor(None, self._normalize_rows, request)
                return APIResponse(status="success", data=rows, metadata={"row_count": len(rows)})
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            except Exception as e:
                logger.exception("Changelog normalization failed")
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.get("/changes/tables")
        async def list_tables_endpoint():
            source = self.generator.source
            tables = source.list_tables() if hasattr(source, 'list_tables') else []
            return APIResponse(status="success", data=tables)

        @self.app.get("/changes/views")
        async def list_views_endpoint():
            return APIResponse(status="success", data=self.generator.backend.list_tables())

    def get_app(self) -> FastAPI:
        return self.app


def create_api(source: Optional[ChangelogSource] = None, config: Optional[ChangelogConfig] = None) -> ChangelogAPI:
    """Create the changelog API with an in-memory source by default"""
    config = config or get_config()
    source = source or ArrowChangelogSource(
        commit_snapshot_id_column=config.commit_snapshot_id_column,
        change_ordinal_column=config.change_ordinal_column,
    )
    return ChangelogAPI(ChangesGenerator(source, config=config))
