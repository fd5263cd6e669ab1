from typing import Literal

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from membership.core.security import get_current_user
from membership.db.session import get_db
from membership.services.attachments import signed_download_url
from membership.services.storage import GcsSigner, get_storage

router = APIRouter(prefix="/api/attachments", tags=["attachments"])

@router.get("/{attachment_id}/download", dependencies=[Depends(get_current_user)])
def download_attachment(
    attachment_id: str,
    disposition: Literal["inline", "attachment"] = "attachment",
    db: Session = Depends(get_db),
    signer: GcsSigner = Depends(get_storage),
):
    url = signed_download_url(db, signer, attachment_id=attachment_id, disposition=disposition)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)
