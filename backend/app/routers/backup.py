from fastapi import APIRouter
from fastapi.responses import FileResponse

from ..backups import create_backup, list_backups, resolve_backup

router = APIRouter(prefix="/backup", tags=["backup"])


@router.get("")
def trigger_backup():
    return create_backup()


@router.get("/list")
def backups():
    return {"backups": list_backups()}


@router.get("/download/{filename}")
def download_backup(filename: str):
    target = resolve_backup(filename)
    return FileResponse(path=str(target), filename=target.name, media_type="application/sql")
