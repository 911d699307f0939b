from supabase import Client
from app.modules.verification import smile_id
from app.modules.verification.schemas import (
    SmileVerifyRequest, SmileVerifyResponse, ExtractRequest, ExtractResponse,
    FinalizeRequest, FinalizeResponse, SmileCallbackResult
)
from app.modules.ai.gemini import generate_json
from app.modules.notifications.service import NotificationService
from typing import Optional, Dict, Any
from fastapi import HTTPException
from datetime import datetime, timezone
import logging
import time

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are a document verification assistant for an African B2B trade platform.
Extract the key fields from this {document_type} document.

Return JSON only:
{{
  "fields": {{"company_name": "...", "registration_number": "...", "country": "...", "issue_date": "...", "expiry_date": "...", "holder_name": "..."}},
  "confidence": 0.0-1.0,
  "issues": ["any inconsistencies, illegible areas or signs of tampering"]
}}
Omit fields that are not present. Never guess values."""

MANUAL_REVIEW_THRESHOLD = 0.7

FINALIZE_MESSAGES = {
    "VERIFIED": ("Company verified", "Your company has been verified. You now carry the verified badge."),
    "REJECTED": ("Verification rejected", "Your verification was not approved. Review the notes and resubmit."),
    "REQUIRES_REVIEW": ("Verification needs attention", "Our team needs more information to verify your company."),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _job_id(kind: str, entity_id: str) -> str:
    return f"afrikoni_{kind}_{entity_id}_{int(time.time() * 1000)}"


class VerificationService:
    """KYB/KYC through Smile ID, AI document extraction and admin finalization."""

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.notifications = NotificationService(supabase)

    def log_activity(self, entity_type: str, entity_id: str, action: str, metadata: Optional[Dict[str, Any]] = None):
        try:
            self.supabase.table("activity_logs").insert({
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "metadata": metadata or {},
                "created_at": _now()
            }).execute()
        except Exception as e:
            logger.warning(f"Activity log {action} for {entity_type} {entity_id} not written: {e}")

    def _record_job(self, job_id: str, job_type: int, payload: Dict[str, Any],
                    company_id: Optional[str] = None, user_id: Optional[str] = None):
        now = _now()
        self.supabase.table("verification_jobs").insert({
            "job_id": job_id,
            "job_type": job_type,
            "company_id": company_id,
            "user_id": user_id,
            "status": "IN_PROGRESS",
            "request_payload": payload,
            "created_at": now,
            "updated_at": now
        }).execute()

    async def verify_business(self, request: SmileVerifyRequest, company_id: str, user_id: str) -> SmileVerifyResponse:
        if not request.registration_number:
            raise HTTPException(status_code=400, detail="registration_number is required for business verification")
        try:
            job_id = _job_id("biz", company_id)
            id_info = {
                "country": request.country_code,
                "id_type": smile_id.business_id_type(request.country_code),
                "id_number": request.registration_number,
                "business_name": request.company_name,
            }
            payload = {
                "job_type": smile_id.BUSINESS_JOB_TYPE,
                "partner_params": {"job_id": job_id, "user_id": company_id, "job_type": smile_id.BUSINESS_JOB_TYPE},
                "id_info": id_info,
            }
            if request.registration_certificate:
                payload["images"] = [{
                    "image_type_id": 2,
                    "image": smile_id.strip_data_url(request.registration_certificate)
                }]
            vendor = await smile_id.submit_job("business_verification", payload)

            self.supabase.table("companies")\
                .update({
                    "verification_status": "IN_PROGRESS",
                    "verification_type": "business",
                    "smile_id_job_id": job_id,
                    "verification_initiated_at": _now()
                })\
                .eq("id", company_id)\
                .execute()
            self._record_job(job_id, smile_id.BUSINESS_JOB_TYPE, {"id_info": id_info}, company_id=company_id, user_id=user_id)
            self.log_activity("company", company_id, "VERIFICATION_INITIATED", {
                "job_id": job_id, "country": request.country_code, "initiated_by": user_id
            })
            logger.info(f"Business verification {job_id} submitted for company {company_id}")
            return SmileVerifyResponse(
                job_id=job_id,
                verification_type="business",
                message="Business verification submitted. Results arrive within minutes.",
                smile_job_id=vendor.get("smile_job_id")
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def verify_identity(self, request: SmileVerifyRequest, user_id: str) -> SmileVerifyResponse:
        if not request.id_type or not request.id_number:
            raise HTTPException(status_code=400, detail="id_type and id_number are required for identity verification")
        try:
            job_id = _job_id("kyc", user_id)
            id_info = {
                "country": request.country_code,
                "id_type": request.id_type,
                "id_number": request.id_number,
                "first_name": request.personal_info.first_name,
                "last_name": request.personal_info.last_name,
                "dob": request.personal_info.dob,
            }
            payload = {
                "job_type": smile_id.ENHANCED_KYC_JOB_TYPE,
                "partner_params": {"job_id": job_id, "user_id": user_id, "job_type": smile_id.ENHANCED_KYC_JOB_TYPE},
                "id_info": id_info,
            }
            if request.selfie_image:
                payload["images"] = [{"image_type_id": 2, "image": smile_id.strip_data_url(request.selfie_image)}]
            vendor = await smile_id.submit_job("id_verification", payload)

            self.supabase.table("profiles")\
                .update({
                    "kyc_status": "IN_PROGRESS",
                    "smile_id_job_id": job_id,
                    "kyc_initiated_at": _now()
                })\
                .eq("id", user_id)\
                .execute()
            # id_number is kept out of the stored request
            stored = {**id_info, "id_number": None}
            self._record_job(job_id, smile_id.ENHANCED_KYC_JOB_TYPE, {"id_info": stored}, user_id=user_id)
            self.log_activity("profile", user_id, "VERIFICATION_INITIATED", {"job_id": job_id, "id_type": request.id_type})
            logger.info(f"Identity verification {job_id} submitted for user {user_id}")
            return SmileVerifyResponse(
                job_id=job_id,
                verification_type="identity",
                message="Identity verification submitted. Results arrive within minutes.",
                smile_job_id=vendor.get("smile_job_id")
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def extract_document(self, request: ExtractRequest) -> ExtractResponse:
        """Read the key fields of a verification document with Gemini.

        When the model is unavailable or unsure the result is flagged for
        manual review instead of failing the upload.
        """
        if not request.image_base64 and not request.text:
            raise HTTPException(status_code=400, detail="image_base64 or text is required")

        prompt = EXTRACTION_PROMPT.format(document_type=request.document_type.replace("_", " "))
        inline = None
        if request.image_base64:
            inline = [{"mime_type": request.mime_type, "data": smile_id.strip_data_url(request.image_base64)}]
        else:
            prompt += f"\n\nDocument text:\n{request.text}"

        try:
            result = await generate_json(prompt, inline_data=inline)
        except HTTPException as e:
            logger.warning(f"Document extraction unavailable ({e.status_code}): {e.detail}")
            return ExtractResponse(
                document_type=request.document_type,
                requires_manual_review=True,
                issues=["Automatic extraction unavailable"]
            )

        if not isinstance(result, dict):
            result = {}
        try:
            confidence = float(result.get("confidence") or 0)
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = max(0.0, min(confidence, 1.0))
        issues = [str(i) for i in result.get("issues") or []]
        response = ExtractResponse(
            document_type=request.document_type,
            fields=result.get("fields") or {},
            confidence=confidence,
            requires_manual_review=confidence < MANUAL_REVIEW_THRESHOLD or bool(issues),
            issues=issues
        )
        if request.company_id:
            self.log_activity("company", request.company_id, "DOCUMENT_EXTRACTED", {
                "document_type": request.document_type,
                "confidence": confidence,
                "requires_manual_review": response.requires_manual_review
            })
        return response

    def finalize(self, request: FinalizeRequest, admin_user_id: str) -> FinalizeResponse:
        try:
            changes = {
                "verification_status": request.status,
                "verification_notes": request.notes,
                "verified": request.status == "VERIFIED",
                "updated_at": _now()
            }
            if request.status == "VERIFIED":
                changes["verified_at"] = _now()
            result = self.supabase.table("companies")\
                .update(changes)\
                .eq("id", request.company_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Company not found")

            title, message = FINALIZE_MESSAGES[request.status]
            notified = self.notifications.notify_company(
                request.company_id,
                title=title,
                message=f"{message} {request.notes}" if request.notes else message,
                notification_type="verification",
                link="/dashboard/verification"
            )
            self.log_activity("company", request.company_id, "VERIFICATION_FINALIZED", {
                "status": request.status, "notes": request.notes, "finalized_by": admin_user_id
            })
            return FinalizeResponse(company_id=request.company_id, status=request.status, notified=notified)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def handle_callback(self, payload: Dict[str, Any]) -> SmileCallbackResult:
        """Apply a Smile ID result to the company (KYB) or profile (KYC) that owns the job."""
        partner_params = payload.get("PartnerParams") or payload.get("partner_params") or {}
        job_id = partner_params.get("job_id")
        if not job_id:
            raise HTTPException(status_code=400, detail="Missing job_id")

        result = payload.get("Result") or payload
        code = result.get("ResultCode") or payload.get("ResultCode")
        text = result.get("ResultText") or payload.get("ResultText")
        status = smile_id.status_for_result_code(code)
        now = _now()
        logger.info(f"Smile ID callback {job_id}: {code} -> {status}")

        if "_biz_" in job_id:
            changes = {
                "verification_status": status,
                "verification_result_code": code,
                "verification_result_text": text,
                "verification_actions": result.get("Actions") or payload.get("Actions") or {},
                "verified": status == "VERIFIED",
                "updated_at": now
            }
            if status == "VERIFIED":
                changes["verified_at"] = now
            updated = self.supabase.table("companies")\
                .update(changes)\
                .eq("smile_id_job_id", job_id)\
                .execute()
            callback_type, entity_type = "business_verification", "company"
        else:
            changes = {
                "kyc_status": status,
                "kyc_result_code": code,
                "kyc_result_text": text,
            }
            if status == "VERIFIED":
                changes["kyc_verified_at"] = now
            updated = self.supabase.table("profiles")\
                .update(changes)\
                .eq("smile_id_job_id", job_id)\
                .execute()
            callback_type, entity_type = "identity_verification", "profile"

        if not updated.data:
            raise HTTPException(status_code=404, detail="Verification job not found")
        entity = updated.data[0]

        try:
            self.supabase.table("verification_jobs")\
                .update({
                    "status": status,
                    "result_code": code,
                    "result_text": text,
                    "response_payload": payload,
                    "completed_at": now,
                    "updated_at": now
                })\
                .eq("job_id", job_id)\
                .execute()
        except Exception as e:
            logger.warning(f"verification_jobs row {job_id} not updated: {e}")

        title, message = FINALIZE_MESSAGES.get(status, FINALIZE_MESSAGES["REQUIRES_REVIEW"])
        if entity_type == "company":
            self.notifications.notify_company(
                entity["id"], title=title, message=message,
                notification_type="verification", link="/dashboard/verification"
            )
        else:
            self.notifications.notify_user(
                entity["id"], title=title.replace("Company", "Identity"), message=message,
                notification_type="verification", link="/dashboard/verification"
            )
        self.log_activity(entity_type, entity["id"], "VERIFICATION_CALLBACK_RECEIVED", {
            "job_id": job_id, "result_code": code, "status": status
        })
        return SmileCallbackResult(type=callback_type, entity_id=entity["id"], status=status)
