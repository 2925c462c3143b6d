"""
Document metadata and the folder tree used to browse it.

Folders keep a materialized ``path`` ("/Carriers/Acme/Insurance"); renames and
moves rewrite the path of the folder and every folder below it.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from tms_api.crud import apply, get_owned, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, NotFound
from tms_api.models import Document, DocumentFolder, FolderDocument
from tms_api.schemas import DocumentIn, FolderDocumentIn, FolderIn, FolderUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["documents"])


# ---------- Documents ----------

def create_document(s: Session, ctx: TenantContext, payload: DocumentIn) -> Document:
    d = Document(tenant_id=ctx.tenant_id, created_by_id=ctx.user_id, **payload.model_dump())
    s.add(d)
    s.commit()
    return d


def list_documents(s: Session, ctx: TenantContext, document_type: Optional[str] = None,
                   entity_type: Optional[str] = None, entity_id: Optional[str] = None,
                   search: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(Document, ctx)
    if document_type:
        stmt = stmt.where(Document.document_type == document_type)
    if entity_type:
        stmt = stmt.where(Document.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(Document.entity_id == entity_id)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(Document.name.ilike(like), Document.file_name.ilike(like)))
    rows, total, pages = paginate(s, stmt.order_by(Document.created_at.desc(), Document.id.desc()), page, limit)
    return {"data": [to_dict(d) for d in rows], "total": total, "page": page, "limit": limit, "totalPages": pages}


def delete_document(s: Session, ctx: TenantContext, document_id: int) -> dict:
    d = get_owned(s, Document, ctx, document_id, "Document")
    d.deleted_at = utcnow()
    s.execute(delete(FolderDocument).where(FolderDocument.document_id == d.id))
    s.commit()
    return {"success": True}


# ---------- Folders ----------

def _get_folder(s: Session, ctx: TenantContext, folder_id: int) -> DocumentFolder:
    return get_owned(s, DocumentFolder, ctx, folder_id, "Folder")


def _children(s: Session, ctx: TenantContext, parent_id: Optional[int]) -> List[DocumentFolder]:
    stmt = scoped(DocumentFolder, ctx)
    if parent_id is None:
        stmt = stmt.where(DocumentFolder.parent_folder_id.is_(None))
    else:
        stmt = stmt.where(DocumentFolder.parent_folder_id == parent_id)
    return s.scalars(stmt.order_by(DocumentFolder.name)).all()


def _counts(s: Session, f: DocumentFolder) -> dict:
    docs = s.scalar(select(func.count(FolderDocument.id)).where(FolderDocument.folder_id == f.id)) or 0
    subs = s.scalar(select(func.count(DocumentFolder.id)).where(DocumentFolder.parent_folder_id == f.id)) or 0
    return {"documents": docs, "subFolders": subs}


def folder_dict(s: Session, f: DocumentFolder) -> dict:
    out = to_dict(f)
    parent = s.get(DocumentFolder, f.parent_folder_id) if f.parent_folder_id else None
    out["parent_folder"] = {"id": parent.id, "name": parent.name, "path": parent.path} if parent else None
    out["_count"] = _counts(s, f)
    return out


def _sibling_exists(s: Session, ctx: TenantContext, parent_id: Optional[int], name: str,
                    exclude_id: Optional[int] = None) -> bool:
    return any(f.name == name and f.id != exclude_id for f in _children(s, ctx, parent_id))


def create_folder(s: Session, ctx: TenantContext, payload: FolderIn) -> DocumentFolder:
    parent = None
    if payload.parent_folder_id:
        parent = s.scalars(scoped(DocumentFolder, ctx).where(DocumentFolder.id == payload.parent_folder_id)).first()
        if parent is None:
            raise NotFound("Parent folder not found")
    if _sibling_exists(s, ctx, payload.parent_folder_id, payload.name):
        raise BadRequest("Folder with this name already exists")
    f = DocumentFolder(
        tenant_id=ctx.tenant_id,
        path=f"{parent.path if parent else ''}/{payload.name}",
        created_by_id=ctx.user_id,
        **payload.model_dump(),
    )
    s.add(f)
    s.commit()
    return f


def list_folders(s: Session, ctx: TenantContext, parent_folder_id: Optional[int] = None,
                 entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> List[DocumentFolder]:
    """Root folders unless a parent or an entity is given."""
    stmt = scoped(DocumentFolder, ctx)
    if parent_folder_id:
        stmt = stmt.where(DocumentFolder.parent_folder_id == parent_folder_id)
    elif not entity_type:
        stmt = stmt.where(DocumentFolder.parent_folder_id.is_(None))
    if entity_type:
        stmt = stmt.where(DocumentFolder.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(DocumentFolder.entity_id == entity_id)
    return s.scalars(stmt.order_by(DocumentFolder.name)).all()


def folder_detail(s: Session, ctx: TenantContext, folder_id: int) -> dict:
    f = _get_folder(s, ctx, folder_id)
    out = folder_dict(s, f)
    out["sub_folders"] = [{"id": c.id, "name": c.name} for c in _children(s, ctx, f.id)]
    links = s.scalars(select(FolderDocument).where(FolderDocument.folder_id == f.id)
                      .order_by(FolderDocument.added_at.desc(), FolderDocument.id.desc())).all()
    out["documents"] = [dict(to_dict(fd), document=to_dict(fd.document)) for fd in links
                        if fd.document.deleted_at is None]
    return out


def is_descendant(s: Session, ctx: TenantContext, candidate_id: int, ancestor_id: int) -> bool:
    """True when ``candidate_id`` sits somewhere below ``ancestor_id``."""
    seen = set()
    current = s.get(DocumentFolder, candidate_id)
    while current is not None and current.parent_folder_id is not None and current.id not in seen:
        if current.parent_folder_id == ancestor_id:
            return True
        seen.add(current.id)
        current = s.get(DocumentFolder, current.parent_folder_id)
    return False


def _rewrite_paths(s: Session, ctx: TenantContext, f: DocumentFolder) -> None:
    for child in _children(s, ctx, f.id):
        child.path = f"{f.path}/{child.name}"
        _rewrite_paths(s, ctx, child)


def update_folder(s: Session, ctx: TenantContext, folder_id: int, payload: FolderUpdate) -> DocumentFolder:
    f = _get_folder(s, ctx, folder_id)
    if f.is_system:
        raise BadRequest("Cannot modify system folder")
    data = payload.model_dump(exclude_unset=True)
    moving = "parent_folder_id" in data
    new_parent_id = data.get("parent_folder_id") if moving else f.parent_folder_id

    parent = None
    if new_parent_id:
        if new_parent_id == f.id:
            raise BadRequest("Folder cannot be its own parent")
        parent = _get_folder(s, ctx, new_parent_id)
        if is_descendant(s, ctx, new_parent_id, f.id):
            raise BadRequest("Cannot move folder into its own descendant")

    name = data.get("name") or f.name
    if (moving or "name" in data) and _sibling_exists(s, ctx, new_parent_id, name, exclude_id=f.id):
        raise BadRequest("Folder with this name already exists")

    if data.get("name") is None:
        data.pop("name", None)
    apply(f, data)
    new_path = f"{parent.path if parent else ''}/{name}"
    if new_path != f.path:
        f.path = new_path
        s.flush()
        _rewrite_paths(s, ctx, f)
    s.commit()
    return f


def _delete_tree(s: Session, ctx: TenantContext, f: DocumentFolder) -> None:
    for child in _children(s, ctx, f.id):
        _delete_tree(s, ctx, child)
    s.execute(delete(FolderDocument).where(FolderDocument.folder_id == f.id))
    s.delete(f)
    # children go before their parent
    s.flush()


def delete_folder(s: Session, ctx: TenantContext, folder_id: int, recursive: bool = False) -> dict:
    f = _get_folder(s, ctx, folder_id)
    if f.is_system:
        raise BadRequest("Cannot delete system folder")
    counts = _counts(s, f)
    if not recursive and (counts["documents"] or counts["subFolders"]):
        raise BadRequest("Folder is not empty. Use recursive=true to delete with contents")
    _delete_tree(s, ctx, f)
    s.commit()
    logger.info("folder %s deleted (recursive=%s)", f.path, recursive)
    return {"success": True}


def add_document(s: Session, ctx: TenantContext, folder_id: int, document_id: int) -> FolderDocument:
    f = _get_folder(s, ctx, folder_id)
    get_owned(s, Document, ctx, document_id, "Document")
    existing = s.scalars(select(FolderDocument).where(
        FolderDocument.folder_id == f.id, FolderDocument.document_id == document_id)).first()
    if existing is not None:
        raise BadRequest("Document already in folder")
    link = FolderDocument(folder_id=f.id, document_id=document_id, added_at=utcnow(), added_by_id=ctx.user_id)
    s.add(link)
    s.commit()
    return link


def remove_document(s: Session, ctx: TenantContext, folder_id: int, document_id: int) -> dict:
    f = _get_folder(s, ctx, folder_id)
    link = s.scalars(select(FolderDocument).where(
        FolderDocument.folder_id == f.id, FolderDocument.document_id == document_id)).first()
    if link is None:
        raise NotFound("Document not in folder")
    s.delete(link)
    s.commit()
    return {"success": True}


def breadcrumbs(s: Session, ctx: TenantContext, folder_id: int) -> List[dict]:
    """Folders from the root down to ``folder_id``."""
    f = _get_folder(s, ctx, folder_id)
    trail = []
    seen = set()
    while f is not None and f.id not in seen:
        seen.add(f.id)
        trail.append({"id": f.id, "name": f.name, "path": f.path})
        f = s.get(DocumentFolder, f.parent_folder_id) if f.parent_folder_id else None
    return list(reversed(trail))


def folder_tree(s: Session, ctx: TenantContext, root_id: Optional[int] = None) -> List[dict]:
    def build(parent_id):
        return [{"id": f.id, "name": f.name, "path": f.path, "children": build(f.id)}
                for f in _children(s, ctx, parent_id)]

    if root_id is not None:
        _get_folder(s, ctx, root_id)
    return build(root_id)


# ---------- Routes ----------

@router.post("/documents", status_code=201)
def document_create(payload: DocumentIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(create_document(s, ctx, payload))


@router.get("/documents")
def document_index(
    document_type: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_documents(s, ctx, document_type, entity_type, entity_id, search, page, limit)


@router.get("/documents/{document_id}")
def document_show(document_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(get_owned(s, Document, ctx, document_id, "Document"))


@router.delete("/documents/{document_id}")
def document_remove(document_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_document(s, ctx, document_id)


@router.post("/folders", status_code=201)
def folder_create(payload: FolderIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return folder_dict(s, create_folder(s, ctx, payload))


@router.get("/folders")
def folder_index(
    parent_folder_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return [folder_dict(s, f) for f in list_folders(s, ctx, parent_folder_id, entity_type, entity_id)]


@router.get("/folders/tree")
def folder_tree_(root_id: Optional[int] = None, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return folder_tree(s, ctx, root_id)


@router.get("/folders/{folder_id}")
def folder_show(folder_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return folder_detail(s, ctx, folder_id)


@router.patch("/folders/{folder_id}")
def folder_update(folder_id: int, payload: FolderUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return folder_dict(s, update_folder(s, ctx, folder_id, payload))


@router.delete("/folders/{folder_id}")
def folder_remove(folder_id: int, recursive: bool = False, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_folder(s, ctx, folder_id, recursive)


@router.get("/folders/{folder_id}/breadcrumbs")
def folder_breadcrumbs(folder_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return breadcrumbs(s, ctx, folder_id)


@router.post("/folders/{folder_id}/documents", status_code=201)
def folder_add_document(folder_id: int, payload: FolderDocumentIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        link = add_document(s, ctx, folder_id, payload.document_id)
        return dict(to_dict(link), document=to_dict(link.document))


@router.delete("/folders/{folder_id}/documents/{document_id}")
def folder_remove_document(folder_id: int, document_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return remove_document(s, ctx, folder_id, document_id)
