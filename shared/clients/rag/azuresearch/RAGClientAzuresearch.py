"""Azure AI Search implementation of RAGClientInterface.

Talks to the Azure AI Search REST API via httpx. The search service has no
delete-by-filter operation, so filter deletes collect matching keys first and
then delete them by key. Listings page by key (ID gt last seen ID) instead of
$skip, which Azure caps at 100000.
"""

import httpx

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.rag.models.TextChunk import (
    FIELD_CONTENT,
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

FIELD_ID = "ID"
FIELD_EMBEDDING = "Embedding"
VECTOR_ALGORITHM_CONFIG_NAME = "hnsw-config"
VECTOR_PROFILE_NAME = "index-sync-vector-profile"


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class RAGClientAzuresearch(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._index_name = self.get_config_val("INDEX", default=None, val_type="string")
        self._api_version = self.get_config_val("API_VERSION", default="2023-11-01", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Azuresearch"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="INDEX", val_type="string", default=None),
            EnvConfig(env_key="API_VERSION", val_type="string", default="2023-11-01"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/indexes"

    def _get_endpoint_index(self) -> str:
        return f"/indexes/{self._index_name}"

    def _get_endpoint_docs_index(self) -> str:
        return f"/indexes/{self._index_name}/docs/index"

    def _get_endpoint_docs_search(self) -> str:
        return f"/indexes/{self._index_name}/docs/search"

    def _get_params(self) -> dict:
        return {"api-version": self._api_version}

    async def do_healthcheck(self) -> httpx.Response:
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), params=self._get_params())

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_filter_expression(self, filters: dict[str, str]) -> str:
        return " and ".join(f"{key} eq {_odata_literal(value)}" for key, value in filters.items())

    def get_index_definition(self) -> dict:
        def _filterable(name: str) -> dict:
            return {"name": name, "type": "Edm.String", "filterable": True, "sortable": True, "facetable": True}

        return {
            "name": self._index_name,
            "fields": [
                {"name": FIELD_ID, "type": "Edm.String", "key": True, "filterable": True, "sortable": True},
                _filterable(FIELD_DOCUMENT_REFERENCE),
                _filterable(FIELD_SOURCE_REFERENCE),
                _filterable(FIELD_PATH),
                _filterable(FIELD_TENANT_ID),
                _filterable(FIELD_GROUP_ID),
                {"name": FIELD_CONTENT, "type": "Edm.String", "searchable": True},
                {
                    "name": FIELD_EMBEDDING,
                    "type": "Collection(Edm.Single)",
                    "searchable": True,
                    "retrievable": False,
                    "dimensions": self.vector_size,
                    "vectorSearchProfile": VECTOR_PROFILE_NAME,
                },
            ],
            "vectorSearch": {
                "algorithms": [
                    {"name": VECTOR_ALGORITHM_CONFIG_NAME, "kind": "hnsw", "hnswParameters": {"metric": "cosine"}}
                ],
                "profiles": [{"name": VECTOR_PROFILE_NAME, "algorithm": VECTOR_ALGORITHM_CONFIG_NAME}],
            },
        }

    def get_upsert_payload(self, chunks: list[TextChunk]) -> dict:
        return {
            "value": [
                {"@search.action": "mergeOrUpload", FIELD_ID: chunk.id, FIELD_EMBEDDING: chunk.embedding, **chunk.to_payload()}
                for chunk in chunks
            ]
        }

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"value": [{"@search.action": "delete", FIELD_ID: chunk_id} for chunk_id in ids]}

    def get_scroll_payload(self, filters: dict[str, str], limit: int, after_id: str | None = None) -> dict:
        expression = self.get_filter_expression(filters)
        if after_id is not None:
            expression = f"{expression} and {FIELD_ID} gt {_odata_literal(after_id)}"
        return {
            "search": "*",
            "filter": expression,
            "select": f"{FIELD_ID},{FIELD_DOCUMENT_REFERENCE}",
            "orderby": f"{FIELD_ID} asc",
            "top": limit,
        }

    def get_search_payload(self, embedding: list[float], filters: dict[str, str], k: int) -> dict:
        return {
            "vectorQueries": [{"kind": "vector", "vector": embedding, "fields": FIELD_EMBEDDING, "k": k}],
            "filter": self.get_filter_expression(filters),
            "select": ",".join([
                FIELD_ID, FIELD_DOCUMENT_REFERENCE, FIELD_SOURCE_REFERENCE, FIELD_CONTENT,
                FIELD_PATH, FIELD_TENANT_ID, FIELD_GROUP_ID,
            ]),
            "top": k,
        }

    ##########################################
    ########### BACKEND PRIMITIVES ###########
    ##########################################

    async def _do_check_index_exists(self) -> bool:
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_index(), params=self._get_params())
        # 404 indicates the index does not exist
        if resp.status_code == 404:
            return False
        if resp.status_code >= 300:
            raise RemoteRequestError(
                f"Checking Azure index '{self._index_name}' failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        return True

    async def _do_create_index(self) -> None:
        # PUT is create-or-update, so a concurrent create is harmless
        await self.do_request(
            method="PUT",
            json=self.get_index_definition(),
            params=self._get_params(),
            endpoint=self._get_endpoint_index(),
            raise_on_error=True,
        )

    async def _do_upsert_batch(self, chunks: list[TextChunk]) -> None:
        resp = await self.do_request(
            method="POST",
            json=self.get_upsert_payload(chunks),
            params=self._get_params(),
            endpoint=self._get_endpoint_docs_index(),
            raise_on_error=True,
        )
        self._raise_on_partial_failure(resp, "upsert")

    async def _do_delete_batch(self, ids: list[str]) -> None:
        resp = await self.do_request(
            method="POST",
            json=self.get_delete_payload(ids),
            params=self._get_params(),
            endpoint=self._get_endpoint_docs_index(),
        )
        if resp.status_code == 404:
            return
        if resp.status_code >= 300 and resp.status_code != 207:
            raise RemoteRequestError(
                f"Deleting documents from '{self._index_name}' failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        # deleting an absent key reports success, so any failure here is real
        self._raise_on_partial_failure(resp, "delete")

    async def _do_delete_by_filter(self, filters: dict[str, str]) -> None:
        ids: list[str] = []
        after_id: str | int | None = None
        while True:
            page = await self._do_scroll_page(filters, limit=self.page_size, offset=after_id)
            ids.extend(str(point["id"]) for point in page.result)
            after_id = page.next_page_offset
            if after_id is None:
                break
        if ids:
            await self.do_delete_by_ids(ids)

    async def _do_scroll_page(self, filters: dict[str, str], limit: int, offset: str | int | None = None) -> ScrollResult:
        after_id = None if offset is None else str(offset)
        resp = await self.do_request(
            method="POST",
            json=self.get_scroll_payload(filters, limit, after_id),
            params=self._get_params(),
            endpoint=self._get_endpoint_docs_search(),
        )
        if resp.status_code == 404:
            return ScrollResult(result=[])
        if resp.status_code >= 300:
            raise RemoteRequestError(
                f"Listing documents of '{self._index_name}' failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        docs = resp.json().get("value") or []
        points = [
            {"id": doc.get(FIELD_ID), "payload": {FIELD_DOCUMENT_REFERENCE: doc.get(FIELD_DOCUMENT_REFERENCE, "")}}
            for doc in docs
        ]
        if len(docs) < limit:
            return ScrollResult(result=points)
        return ScrollResult(result=points, next_page_offset=str(docs[-1].get(FIELD_ID)))

    async def _do_vector_search(self, embedding: list[float], filters: dict[str, str], k: int) -> list[TextChunk]:
        resp = await self.do_request(
            method="POST",
            json=self.get_search_payload(embedding, filters, k),
            params=self._get_params(),
            endpoint=self._get_endpoint_docs_search(),
        )
        if resp.status_code == 404:
            self._index_exists = False
            raise NeedsIngestionError(
                "You need to perform ingestion before querying so that there are documents available for context."
            )
        if resp.status_code >= 300:
            raise RemoteRequestError(
                f"Searching '{self._index_name}' failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        return [
            TextChunk.from_payload(doc.get(FIELD_ID), doc, score=doc.get("@search.score"))
            for doc in resp.json().get("value") or []
        ]

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _raise_on_partial_failure(self, resp: httpx.Response, action: str) -> None:
        failed = [item for item in (resp.json().get("value") or []) if not item.get("status", True)]
        if failed:
            self.logging.error(
                "Azure index '%s' %s failed for %d document(s): %s",
                self._index_name, action, len(failed), failed[0].get("errorMessage"),
            )
            raise RemoteRequestError(
                f"Azure {action} failed for {len(failed)} document(s)", status_code=resp.status_code
            )
