import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from integrations.google_auth import GoogleApi

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
DOCS_API = "https://docs.googleapis.com/v1"
INDEX_LINK_TEXT = "Ver ejercicios"


@dataclass
class ClassDocument:
    document_id: str
    document_link: str


def document_url(document_id: str) -> str:
    return f"https://docs.google.com/document/d/{document_id}/edit"


def folder_url(folder_id: str) -> str:
    return f"https://drive.google.com/drive/folders/{folder_id}"


def document_name(student_name: str, class_date: datetime) -> str:
    first_name = (student_name or "").split(" ")[0] or "Estudiante"
    return f"{class_date:%d/%m/%y} - Ejercicios - {first_name}"


class GoogleDocumentProvider(GoogleApi):
    """Copies the exercise template into the student's Drive folder."""

    def __init__(self, tokens, template_doc_id: str, timeout=15, transport=None):
        super().__init__(tokens, timeout=timeout, transport=transport)
        self.template_doc_id = template_doc_id

    def create_class_document(self, student_name: str, level: Optional[str], class_date: datetime,
                              parent_folder_id: str, index_doc_id: Optional[str] = None) -> ClassDocument:
        body = {
            "name": document_name(student_name, class_date),
            "parents": [parent_folder_id],
        }
        if level:
            body["description"] = f"Nivel {level}"
            body["appProperties"] = {"level": level}
        response = self.request(
            "POST",
            f"{DRIVE_API}/files/{self.template_doc_id}/copy",
            params={"supportsAllDrives": "true", "fields": "id,name"},
            json=body,
        )
        document_id = response.json().get("id")
        if not document_id:
            raise ValueError("Drive copy returned no document id")

        doc = ClassDocument(document_id=document_id, document_link=document_url(document_id))
        logger.info("created class document %s for %s (level %s)", document_id, student_name, level or "-")

        if index_doc_id:
            try:
                self.append_to_index(index_doc_id, class_date, doc.document_link)
            except Exception as exc:  # the document exists; the index is a nicety
                logger.warning("could not update index document %s: %s", index_doc_id, exc)
        return doc

    def append_to_index(self, index_doc_id: str, class_date: datetime, link: str) -> None:
        current = self.request("GET", f"{DOCS_API}/documents/{index_doc_id}").json()
        content = (current.get("body") or {}).get("content") or [{}]
        end_index = content[-1].get("endIndex", 1)

        prefix = f"\n• {class_date:%d/%m/%y} - "
        insert_at = max(end_index - 1, 1)
        link_start = insert_at + len(prefix)
        self.request(
            "POST",
            f"{DOCS_API}/documents/{index_doc_id}:batchUpdate",
            json={
                "requests": [
                    {"insertText": {"location": {"index": insert_at}, "text": prefix + INDEX_LINK_TEXT}},
                    {
                        "updateTextStyle": {
                            "range": {"startIndex": link_start, "endIndex": link_start + len(INDEX_LINK_TEXT)},
                            "textStyle": {"link": {"url": link}},
                            "fields": "link",
                        }
                    },
                ]
            },
        )
