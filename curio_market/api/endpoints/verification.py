"""Account verification endpoints - email, phone, identity and address."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import client_info, service_error
from curio_market.core.config import settings
from curio_market.core.rate_limit import limiter
from curio_market.core.security import require_user
from curio_market.db.session import get_db
from curio_market.models.user import User
from curio_market.models.verification import VerificationRequest
from curio_market.schemas.user import UserResponse
from curio_market.schemas.verification import (
    AddressVerificationRequest,
    CodeSentResponse,
    CodeVerifyRequest,
    IdentitySessionResponse,
    PhoneSendRequest,
    VerificationRequestResponse,
    VerificationStatusResponse,
)
from curio_market.services.verification_service import VerificationError, verification_service

router = APIRouter()


def code_sent(request: VerificationRequest) -> CodeSentResponse:
    # Codes are echoed back only in debug builds
    return CodeSentResponse(
        expires_at=request.code_expires_at,
        code=request.verification_code if settings.DEBUG else None,
    )


@router.get("/status", response_model=VerificationStatusResponse)
async def verification_status(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await verification_service.get_user_verification_status(db, user.id)


@router.post("/email/send", response_model=CodeSentResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFICATION)
async def send_email_code(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        pending = await verification_service.initiate_email_verification(db, user.id, client_info(request))
    except VerificationError as e:
        raise service_error(e)
    return code_sent(pending)


@router.post("/email/verify", response_model=UserResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFICATION)
async def verify_email(
    request: Request,
    body: CodeVerifyRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await verification_service.verify_email_code(db, user.id, body.code, client_info(request))
    except VerificationError as e:
        raise service_error(e)


@router.post("/phone/send", response_model=CodeSentResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFICATION)
async def send_phone_code(
    request: Request,
    body: PhoneSendRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        pending = await verification_service.initiate_phone_verification(
            db, user.id, body.phone_number, client_info(request)
        )
    except VerificationError as e:
        raise service_error(e)
    return code_sent(pending)


@router.post("/phone/verify", response_model=UserResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFICATION)
async def verify_phone(
    request: Request,
    body: CodeVerifyRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await verification_service.verify_phone_code(db, user.id, body.code, client_info(request))
    except VerificationError as e:
        raise service_error(e)


@router.post("/identity", response_model=IdentitySessionResponse, status_code=status.HTTP_201_CREATED)
async def start_identity_check(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """The browser is sent to ``session_url`` when the provider supplies one."""
    try:
        session = await verification_service.initiate_identity_verification(db, user.id, client_info(request))
    except VerificationError as e:
        raise service_error(e)
    return IdentitySessionResponse(session_id=session.id, session_url=session.url)


@router.post("/address", response_model=VerificationRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_address(
    request: Request,
    body: AddressVerificationRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await verification_service.initiate_address_verification(
            db, user.id, body.model_dump(), client_info(request)
        )
    except VerificationError as e:
        raise service_error(e)
