from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.orm import Session

from filelair.database import get_db
from filelair.schemas import PasswordRequest, UploadRequest
from filelair.services.access_control import AccessControl
from filelair.services.metadata_store import MetadataStore, epoch_now
from filelair.services.storage import get_object_storage

router = APIRouter(prefix="/api")


def get_clock():
    return epoch_now


def get_access_control(
    db: Session = Depends(get_db),
    storage=Depends(get_object_storage),
    clock=Depends(get_clock),
) -> AccessControl:
    return AccessControl(MetadataStore(db, clock=clock), storage)


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first[:64]
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@router.post("/upload")
def create_upload(
    body: UploadRequest,
    client: str = Depends(client_address),
    access: AccessControl = Depends(get_access_control),
):
    result = access.upload(
        file_name=body.file_name,
        file_size=body.file_size,
        content_type=body.content_type,
        password=body.password,
        client_address=client,
    )
    return {"success": True, **result}


@router.get("/files/{share_id}")
def file_info(
    share_id: str,
    client: str = Depends(client_address),
    access: AccessControl = Depends(get_access_control),
):
    return {"success": True, **access.get_file_info(share_id, client)}


@router.post("/files/{share_id}/download")
def request_download(
    share_id: str,
    body: PasswordRequest | None = Body(default=None),
    client: str = Depends(client_address),
    access: AccessControl = Depends(get_access_control),
):
    password = body.password if body else None
    return {"success": True, **access.request_download(share_id, password, client)}


@router.get("/files/{share_id}/download")
def redeem_download(
    share_id: str,
    token: str = Query(default=""),
    client: str = Depends(client_address),
    access: AccessControl = Depends(get_access_control),
):
    return {"success": True, **access.redeem_download_token(share_id, token, client)}


@router.delete("/files/{share_id}")
def delete_file(
    share_id: str,
    body: PasswordRequest | None = Body(default=None),
    client: str = Depends(client_address),
    access: AccessControl = Depends(get_access_control),
):
    password = body.password if body else None
    return access.delete_file(share_id, password, client)
