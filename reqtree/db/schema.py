"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency.

Every collection (projects, requirements, requirements/<id>/comments) lives
in the one documents table. Document bodies are JSON; queries filter and
order with json_extract.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    data TEXT NOT NULL,
    UNIQUE (collection, doc_id)
);

CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
CREATE INDEX IF NOT EXISTS idx_documents_project_id
    ON documents(collection, json_extract(data, '$.project_id'));
CREATE INDEX IF NOT EXISTS idx_documents_parent_id
    ON documents(collection, json_extract(data, '$.parent_id'));
"""
