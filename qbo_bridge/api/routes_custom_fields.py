from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from qbo_bridge.api.deps import (
    get_custom_fields_service,
    get_validation_service,
    require_authenticated,
)
from qbo_bridge.schemas.custom_fields import CustomFieldDefinitionWrite, CustomFieldValidateRequest
from qbo_bridge.services.custom_field_validation import CustomFieldValidationService
from qbo_bridge.services.custom_fields import CustomFieldsService


router = APIRouter(
    prefix="/api/quickbook/custom-fields",
    tags=["custom-fields"],
    dependencies=[Depends(require_authenticated)],
)
logger = logging.getLogger("qbo_bridge.api.custom_fields")


@router.get("")
async def list_custom_fields(
    service: CustomFieldsService = Depends(get_custom_fields_service),
) -> dict[str, Any]:
    return await service.get_custom_fields()


@router.post("")
async def create_custom_field(
    payload: CustomFieldDefinitionWrite,
    service: CustomFieldsService = Depends(get_custom_fields_service),
    validation: CustomFieldValidationService = Depends(get_validation_service),
) -> dict[str, Any]:
    data = await service.create_custom_field(payload.to_graphql_body())
    validation.invalidate()
    logger.info("custom_field_definition_created", extra={"label": payload.label})
    return data


@router.post("/validate")
async def validate_custom_fields(
    payload: CustomFieldValidateRequest,
    validation: CustomFieldValidationService = Depends(get_validation_service),
) -> JSONResponse:
    if not payload.custom_fields:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="customFields array is required",
        )
    validation.invalidate()
    verdict = await validation.validate_fields(payload.custom_fields)
    status_code = status.HTTP_200_OK if verdict.valid else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=status_code, content=asdict(verdict))


@router.put("/{definition_id}")
async def update_custom_field(
    definition_id: str,
    payload: CustomFieldDefinitionWrite,
    service: CustomFieldsService = Depends(get_custom_fields_service),
    validation: CustomFieldValidationService = Depends(get_validation_service),
) -> dict[str, Any]:
    data = await service.update_custom_field(definition_id, payload.to_graphql_body())
    validation.invalidate()
    logger.info("custom_field_definition_updated", extra={"definition_id": definition_id})
    return data


@router.delete("/{definition_id}")
async def delete_custom_field(
    definition_id: str,
    service: CustomFieldsService = Depends(get_custom_fields_service),
    validation: CustomFieldValidationService = Depends(get_validation_service),
) -> dict[str, Any]:
    data = await service.deactivate_custom_field(definition_id)
    validation.invalidate()
    logger.info("custom_field_definition_deactivated", extra={"definition_id": definition_id})
    return data
