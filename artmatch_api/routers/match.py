"""
Match Router
============
Checks uploaded images against the corpus of known AI artwork.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from artmatch_etl.images.matcher import CorpusMatcher, describe_matches
from artmatch_etl.models import MatchResult

from ..config import settings
from ..dependencies import get_matcher, require_api_key
from ..schemas.match import ArtworkMatch, ImageMatchResult, MatchResponse

router = APIRouter(prefix="/match", tags=["match"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=MatchResponse)
async def match_images(
    files: List[UploadFile] = File(..., description="One or more images to check."),
    matcher: CorpusMatcher = Depends(get_matcher),
) -> MatchResponse:
    """
    Match each uploaded image against the corpus.

    Undecodable images are reported with no matches rather than as errors.
    """
    if len(files) > settings.max_files_per_request:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.max_files_per_request} files per request",
        )

    results: List[ImageMatchResult] = []
    found: List[MatchResult] = []
    for upload in files:
        data = await upload.read(settings.max_upload_bytes + 1)
        if len(data) > settings.max_upload_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"{upload.filename} exceeds {settings.max_upload_bytes} bytes",
            )

        matches = await matcher.match(data)
        found.extend(matches)
        results.append(
            ImageMatchResult(
                filename=upload.filename,
                matches=[
                    ArtworkMatch(
                        artist_name=match.artist_name,
                        confidence=match.confidence,
                        distance=match.distance,
                    )
                    for match in matches
                ],
            )
        )

    return MatchResponse(
        is_known_ai_art=bool(found),
        results=results,
        message=describe_matches(found),
    )
