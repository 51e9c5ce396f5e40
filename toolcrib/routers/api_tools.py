from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.errors import ToolNotFound
from ..crud.tools import create_tool, delete_tool, get_tool, list_tools, update_tool
from ..db.session import get_db
from ..deps.auth import authenticate, require_admin
from ..schemas.tool import ToolCreate, ToolOut, ToolUpdate

# Every route needs a valid token; writes additionally require an administrator.
router = APIRouter(prefix="/api/v1/tools", tags=["tools"], dependencies=[Depends(authenticate)])


def _get_or_404(db: Session, tool_id: int):
    tool = get_tool(db, tool_id)
    if not tool:
        raise ToolNotFound()
    return tool


@router.get("", response_model=list[ToolOut])
def api_list(search: str | None = None, limit: int = 100, offset: int = 0, db: Session = Depends(get_db)):
    return list_tools(db, search=search, limit=min(max(limit, 1), 500), offset=max(offset, 0))


@router.get("/{tool_id}", response_model=ToolOut)
def api_get(tool_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, tool_id)


@router.post("", response_model=ToolOut, status_code=201, dependencies=[Depends(require_admin)])
def api_create(payload: ToolCreate, db: Session = Depends(get_db)):
    return create_tool(db, payload.model_dump())


@router.put("/{tool_id}", response_model=ToolOut, dependencies=[Depends(require_admin)])
def api_update(tool_id: int, payload: ToolUpdate, db: Session = Depends(get_db)):
    tool = _get_or_404(db, tool_id)
    return update_tool(db, tool, payload.model_dump(exclude_unset=True))


@router.delete("/{tool_id}", dependencies=[Depends(require_admin)])
def api_delete(tool_id: int, db: Session = Depends(get_db)):
    tool = _get_or_404(db, tool_id)
    delete_tool(db, tool)
    return {"status": "deleted"}
