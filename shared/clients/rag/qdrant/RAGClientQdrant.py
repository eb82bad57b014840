import httpx

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.rag.models.TextChunk import (
    FIELD_DOCUMENT_REFERENCE,
    FIELD_GROUP_ID,
    FIELD_PATH,
    FIELD_SOURCE_REFERENCE,
    FIELD_TENANT_ID,
    TextChunk,
)
from shared.exceptions import NeedsIngestionError, RemoteRequestError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

# payload fields that get a keyword index; TenantID is the tenant partition key
_KEYWORD_INDEX_FIELDS = [FIELD_GROUP_ID, FIELD_DOCUMENT_REFERENCE, FIELD_SOURCE_REFERENCE, FIELD_PATH]


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default=None)
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_scroll(self) -> str:
        return f"/collections/{self._collection_name}/points/scroll"

    def _get_endpoint_search(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_points(self) -> str:
        return f"/collections/{self._collection_name}/points"

    def _get_endpoint_delete_points(self) -> str:
        return f"/collections/{self._collection_name}/points/delete"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_create_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_payload_index(self) -> str:
        return f"/collections/{self._collection_name}/index"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_filter_payload(self, filters: dict[str, str]) -> dict:
        return {"must": [{"key": key, "match": {"value": value}} for key, value in filters.items()]}

    def get_create_collection_payload(self) -> dict:
        return {
            "vectors": {"size": self.vector_size, "distance": "Cosine"},
            # per-tenant HNSW graphs instead of one global graph
            "hnsw_config": {"payload_m": 16, "m": 0},
        }

    def get_upsert_payload(self, chunks: list[TextChunk]) -> dict:
        return {
            "points": [
                {"id": chunk.id, "vector": chunk.embedding, "payload": chunk.to_payload()}
                for chunk in chunks
            ]
        }

    def get_scroll_payload(self, filters: dict[str, str], limit: int, offset: str | int | None = None) -> dict:
        payload = {
            "filter": self.get_filter_payload(filters),
            "limit": limit,
            "with_payload": [FIELD_DOCUMENT_REFERENCE],
            "with_vector": False,
        }
        if offset is not None:
            payload["offset"] = offset
        return payload

    def get_search_payload(self, embedding: list[float], filters: dict[str, str], k: int) -> dict:
        return {
            "vector": embedding,
            "filter": self.get_filter_payload(filters),
            "limit": k,
            "with_payload": True,
            "with_vector": False,
        }

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_scroll_content(self, raw_response: dict) -> ScrollResult:
        result = raw_response.get("result") or {}
        return ScrollResult(
            result=result.get("points", []),
            next_page_offset=result.get("next_page_offset"),
        )

    def extract_search_hits(self, raw_response: dict) -> list[TextChunk]:
        return [
            TextChunk.from_payload(hit.get("id"), hit.get("payload") or {}, score=hit.get("score"))
            for hit in raw_response.get("result") or []
        ]

    ##########################################
    ########### BACKEND PRIMITIVES ###########
    ##########################################

    async def _do_check_index_exists(self) -> bool:
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_check_collection_existence(),
            raise_on_error=True,
        )
        return bool((resp.json().get("result") or {}).get("exists"))

    async def _do_create_index(self) -> None:
        resp = await self.do_request(
            method="PUT",
            json=self.get_create_collection_payload(),
            endpoint=self._get_endpoint_create_collection(),
        )
        # 409: created concurrently by another ingester
        if resp.status_code >= 300 and resp.status_code != 409:
            raise RemoteRequestError(
                f"Creating Qdrant collection '{self._collection_name}' failed with status {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        await self.do_request(
            method="PUT",
            params={"wait": "true"},
            json={"field_name": FIELD_TENANT_ID, "field_schema": {"type": "keyword", "is_tenant": True}},
            endpoint=self._get_endpoint_payload_index(),
            raise_on_error=True,
        )
        for field in _KEYWORD_INDEX_FIELDS:
            await self.do_request(
                method="PUT",
                params={"wait": "true"},
                json={"field_name": field, "field_schema": "keyword"},
                endpoint=self._get_endpoint_payload_index(),
                raise_on_error=True,
            )

    async def _do_upsert_batch(self, chunks: list[TextChunk]) -> None:
        await self.do_request(
            method="PUT",
            params={"wait": "true"},
            json=self.get_upsert_payload(chunks),
            endpoint=self._get_endpoint_points(),
            raise_on_error=True,
        )

    async def _do_delete_batch(self, ids: list[str]) -> None:
        await self._do_delete({"points": ids})

    async def _do_delete_by_filter(self, filters: dict[str, str]) -> None:
        await self._do_delete({"filter": self.get_filter_payload(filters)})

    async def _do_delete(self, body: dict) -> None:
        resp = await self.do_request(
            method="POST",
            params={"wait": "true"},
            json=body,
            endpoint=self._get_endpoint_delete_points(),
        )
        # 404 indicates the collection does not exist, nothing to delete
        if resp.status_code == 404:
            return
        if resp.status_code >= 300:
            raise RemoteRequestError(
                f"Deleting points from '{self._collection_name}' failed with status {resp.status_code}",
                status_code=resp.status_code,
            )

    async def _do_scroll_page(self, filters: dict[str, str], limit: int, offset: str | int | None = None) -> ScrollResult:
        resp = await self.do_request(
            method="POST",
            json=self.get_scroll_payload(filters, limit, offset),
            endpoint=self._get_endpoint_scroll(),
        )
        if resp.status_code == 404:
            return ScrollResult(result=[])
        if resp.status_code >= 300:
            raise RemoteRequestError(
                f"Scrolling '{self._collection_name}' failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        return self.extract_scroll_content(resp.json())

    async def _do_vector_search(self, embedding: list[float], filters: dict[str, str], k: int) -> list[TextChunk]:
        resp = await self.do_request(
            method="POST",
            json=self.get_search_payload(embedding, filters, k),
            endpoint=self._get_endpoint_search(),
        )
        if resp.status_code == 404:
            self._index_exists = False
            raise NeedsIngestionError(
                "You need to perform ingestion before querying so that there are documents available for context."
            )
        if resp.status_code >= 300:
            raise RemoteRequestError(
                f"Searching '{self._collection_name}' failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        return self.extract_search_hits(resp.json())
