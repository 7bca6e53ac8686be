"""Voice metadata API routes."""

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query

from voxstudio.models.projects import VoiceRequest
from voxstudio.voices.cache import Voice, voice_catalog

router = APIRouter(prefix="/api/v1/voices", tags=["voices"])


@router.get("")
async def list_voices(
    project_id: Optional[str] = Query(None),
    stage_id: Optional[str] = Query(None),
    base: bool = Query(False),
) -> Dict[str, Any]:
    """List cached voices, optionally filtered."""
    if base:
        voices = voice_catalog.base_voices()
    elif project_id and stage_id:
        voices = voice_catalog.ai_voices_for_stage(project_id, stage_id)
    elif project_id:
        voices = voice_catalog.voices_for_project(project_id)
    else:
        voices = voice_catalog.all_voices()
    return {"voices": [asdict(v) for v in voices], "storage": voice_catalog.cache.usage()}


@router.post("", status_code=201)
async def add_voice(request: VoiceRequest = Body(...)) -> Dict[str, Any]:
    try:
        voice = voice_catalog.add_voice(Voice(**request.model_dump()))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"voice": asdict(voice)}


@router.delete("/{voice_id}")
async def delete_voice(voice_id: str) -> Dict[str, Any]:
    if not voice_catalog.delete_voice(voice_id):
        raise HTTPException(status_code=404, detail="Voice not found")
    return {"success": True}
