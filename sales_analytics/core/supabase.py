from __future__ import annotations

from threading import Lock
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from sales_analytics.core.config import get_settings


class SupabaseClient:
    _shared_client: httpx.Client | None = None
    _client_lock: Lock = Lock()

    def __init__(self) -> None:
        settings = get_settings()
        self.base_url = settings.supabase_url.rstrip("/") + "/rest/v1"
        self.api_key = settings.supabase_service_role_key or settings.supabase_anon_key
        if not self.api_key:
            raise ValueError("Supabase API key is required")
        self._client = self._get_shared_client()

    @classmethod
    def _get_shared_client(cls) -> httpx.Client:
        if cls._shared_client is not None:
            return cls._shared_client
        with cls._client_lock:
            if cls._shared_client is None:
                cls._shared_client = httpx.Client(
                    timeout=30.0,
                    limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
                )
        return cls._shared_client

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }

    def select(
        self,
        table: str,
        select: str,
        filters: Optional[List[Tuple[str, str]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: List[Tuple[str, str]] = [("select", select)]
        if filters:
            params.extend(filters)
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset is not None:
            params.append(("offset", str(offset)))
        if order:
            params.append(("order", order))

        url = f"{self.base_url}/{table}?{urlencode(params, doseq=True)}"
        response = self._client.get(url, headers=self._headers())
        response.raise_for_status()
        return response.json()

    def select_all(
        self,
        table: str,
        select: str,
        page_size: int,
        filters: Optional[List[Tuple[str, str]]] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Read every row of ``table`` in ``page_size`` chunks.

        PostgREST caps a single response, so snapshot tables with a few
        thousand rows need several round trips. A short page ends the scan.
        """
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self.select(
                table=table,
                select=select,
                filters=filters,
                limit=page_size,
                offset=offset,
                order=order,
            )
            rows.extend(page)
            if len(page) < page_size:
                return rows
            offset += page_size

    def insert(
        self,
        table: str,
        payload: Dict[str, Any] | List[Dict[str, Any]],
        upsert: bool = False,
        on_conflict: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: List[Tuple[str, str]] = []
        if on_conflict:
            params.append(("on_conflict", on_conflict))
        url = f"{self.base_url}/{table}"
        if params:
            url = f"{url}?{urlencode(params, doseq=True)}"
        headers = {
            **self._headers(),
            "Content-Type": "application/json",
            "Prefer": "return=minimal",
        }
        if upsert:
            headers["Prefer"] = "resolution=merge-duplicates,return=minimal"
        response = self._client.post(url, headers=headers, json=payload)
        response.raise_for_status()
        if not response.content:
            return []
        data = response.json()
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        return []
