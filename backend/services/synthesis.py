"""
services/synthesis.py — The synthesis matrix: AI parameter discovery, value
extraction, manual edits, and the timeline/trend views derived from it.
"""

import json
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from dateutil import parser as date_parser
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from config import Config
from logging_config import get_logger
from models_async import (
    PARAMETER_TYPES, STATUS_PROCESSED, DataSource, Project, SynthesisParameter, SynthesisValue,
)
from services.summarizer import summary_tree

logger = get_logger(__name__)

EXCERPT_CHARS = 1500

SYSTEM_PROMPT = (
    "You are a research synthesis expert who helps organize and analyze academic and "
    "technical documents. You MUST respond with valid JSON only. Do not include any text "
    "before or after the JSON."
)

ANALYSIS_TEMPLATE = """
You are analyzing a collection of research documents to identify key parameters that should be tracked in a synthesis matrix.

Here are the documents:
{documents}

Your task:
1. Identify 5-8 key parameters that would be most valuable to track across these documents
2. For each parameter, determine what type it is (text, number, date, category)
3. Provide a brief description of why this parameter is important
4. Extract values for each parameter from each document (with confidence scores)

Focus on parameters that would help compare and contrast these sources, identify trends, or support decision-making.

Common valuable parameters include:
- Publication/creation date
- Authors/organizations
- Key metrics or measurements
- Technology/methodology used
- Geographic location
- Target audience/application
- Conclusions/outcomes

Key "extractedValues" by each document's ID exactly as given above.

Please respond in this exact JSON format:
{{
  "suggestedParameters": [
    {{
      "name": "Parameter Name",
      "type": "text|number|date|category",
      "description": "Why this parameter matters",
      "importance": 0.9
    }}
  ],
  "extractedValues": {{
    "dataSourceId": {{
      "parameterName": {{
        "value": "extracted value",
        "confidence": 0.85,
        "context": "relevant snippet from source"
      }}
    }}
  }}
}}"""


class SynthesisError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


# ── Pure helpers ──────────────────────────────────────────────────────────────

def build_analysis_prompt(sources: List[dict]) -> str:
    blocks = [
        f"\nDocument {idx + 1}: {src['name']} ({src['type']})\n"
        f"ID: {src['id']}\n"
        f"Content: {src['content'][:EXCERPT_CHARS]}...\n"
        for idx, src in enumerate(sources)
    ]
    return ANALYSIS_TEMPLATE.format(documents="\n".join(blocks))


def parse_analysis(raw: str) -> dict:
    try:
        result = json.loads(raw)
    except (TypeError, ValueError):
        logger.error("synthesis.parse_failed", response=raw[:500] if raw else raw)
        raise SynthesisError(500, "Invalid response format from AI")
    if not isinstance(result, dict):
        raise SynthesisError(500, "Invalid response format from AI")
    if not isinstance(result.get("suggestedParameters"), list):
        result["suggestedParameters"] = []
    if not isinstance(result.get("extractedValues"), dict):
        result["extractedValues"] = {}
    return result


def normalize_parameter_type(value) -> str:
    value = str(value or "").strip().lower()
    return value if value in PARAMETER_TYPES else "text"


def as_text(value) -> Optional[str]:
    """Model output bound for a Text column; lists and objects are kept as JSON."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return json.dumps(value, default=str)


def coerce_confidence(value) -> Optional[float]:
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(1.0, conf))


def confidence_level(confidence: Optional[float]) -> Optional[str]:
    if confidence is None:
        return None
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.6:
        return "medium"
    return "low"


def cell_dict(value: SynthesisValue) -> dict:
    d = value.to_dict()
    d["display_value"] = value.display_value
    d["ai_extracted"] = bool(value.extracted_value) and not value.is_verified
    d["confidence_level"] = confidence_level(value.confidence)
    return d


def parse_event_date(raw: str) -> Optional[datetime]:
    """Lenient date parsing; missing parts default to January 1st."""
    try:
        parsed = date_parser.parse(raw, default=datetime(1970, 1, 1))
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def build_timeline(
    sources: Iterable[DataSource],
    parameters: Iterable[SynthesisParameter],
    values: Iterable[SynthesisValue],
) -> List[dict]:
    """
    One event per source.  The event date is the first date-typed parameter
    value that parses (parameters in display order), else the source's
    created_at.  Events are sorted oldest first.
    """
    params = sorted(parameters, key=lambda p: (p.display_order or 0))
    by_cell = {(v.data_source_id, v.parameter_id): v for v in values}

    events = []
    for source in sources:
        event_date = source.created_at
        source_values: Dict[str, str] = {}
        date_found = False
        for param in params:
            cell = by_cell.get((source.id, param.id))
            if cell is None:
                continue
            source_values[param.name] = cell.display_value
            if not date_found and param.type == "date" and cell.display_value:
                parsed = parse_event_date(cell.display_value)
                if parsed is not None:
                    event_date = parsed
                    date_found = True
        events.append({
            "date": event_date,
            "year": event_date.year,
            "source": source.to_dict(),
            "values": source_values,
        })

    events.sort(key=lambda e: e["date"])
    return events


def build_trends(events: List[dict], parameter_name: str) -> List[dict]:
    by_year: Dict[int, List[str]] = {}
    for event in events:
        value = event["values"].get(parameter_name)
        if value:
            by_year.setdefault(event["year"], []).append(value)
    return [
        {
            "year": year,
            "values": vals,
            "uniqueValues": list(dict.fromkeys(vals)),
            "count": len(vals),
        }
        for year, vals in sorted(by_year.items())
    ]


# ── Service ───────────────────────────────────────────────────────────────────

class SynthesisService:
    def __init__(self, llm_service):
        self._llm = llm_service

    async def analyze_sources(self, db, project: Project) -> dict:
        result = await db.execute(
            select(DataSource)
            .options(selectinload(DataSource.summaries))
            .where(DataSource.project_id == project.id, DataSource.status == STATUS_PROCESSED)
            .order_by(DataSource.created_at)
        )
        sources = result.scalars().all()
        if not sources:
            raise SynthesisError(400, "No processed sources found")

        source_contents = [
            {
                "id": src.id,
                "name": src.name,
                "type": src.type,
                "content": "\n\n".join(s.content for s in summary_tree(src.summaries)),
            }
            for src in sources
        ]

        raw = await self._llm.complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_analysis_prompt(source_contents)},
            ],
            model=Config.SYNTHESIS_MODEL,
            temperature=Config.SUMMARY_TEMPERATURE,
            json_mode=True,
        )
        if not raw:
            raise SynthesisError(500, "No response from OpenAI")
        analysis = parse_analysis(raw)

        project_id = project.id
        source_ids = {src.id for src in sources}
        parameters, created_count = await self._store_parameters(
            db, project_id, analysis["suggestedParameters"]
        )
        # a failed value insert rolls back and expires every loaded instance
        parameter_dicts = [p.to_dict() for p in parameters]
        values_count = await self._store_values(
            db,
            {p.name: p for p in parameters},
            source_ids,
            analysis["extractedValues"],
        )
        logger.info(
            "synthesis.analyzed",
            project_id=project_id,
            sources=len(source_ids),
            parameters_created=created_count,
            values=values_count,
        )
        return {
            "success": True,
            "parametersCreated": created_count,
            "valuesExtracted": values_count,
            "parameters": parameter_dicts,
        }

    async def _next_display_order(self, db, project_id: str) -> int:
        current = await db.scalar(
            select(func.max(SynthesisParameter.display_order))
            .where(SynthesisParameter.project_id == project_id)
        )
        return 0 if current is None else current + 1

    async def _store_parameters(self, db, project_id: str, suggestions: list):
        """Insert suggested parameters; a name the project already has is reused."""
        existing = await db.execute(
            select(SynthesisParameter).where(SynthesisParameter.project_id == project_id)
        )
        by_name = {p.name: p for p in existing.scalars().all()}
        order = await self._next_display_order(db, project_id)

        parameters: List[SynthesisParameter] = []
        created = 0
        for suggestion in suggestions:
            if not isinstance(suggestion, dict):
                continue
            name = str(suggestion.get("name") or "").strip()
            if not name:
                continue
            param = by_name.get(name)
            if param is None:
                param = SynthesisParameter(
                    project_id=project_id,
                    name=name,
                    type=normalize_parameter_type(suggestion.get("type")),
                    description=as_text(suggestion.get("description")),
                    is_system=True,
                    display_order=order,
                )
                db.add(param)
                by_name[name] = param
                order += 1
                created += 1
            if param not in parameters:
                parameters.append(param)

        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("synthesis.parameters.insert_failed", project_id=project_id, error=str(exc))
            raise SynthesisError(500, "Failed to save parameters")
        return parameters, created

    async def _store_values(
        self,
        db,
        parameters_by_name: Dict[str, SynthesisParameter],
        source_ids: set,
        extracted: dict,
    ) -> int:
        if not parameters_by_name or not extracted:
            return 0

        rows = await db.execute(
            select(SynthesisValue).where(
                SynthesisValue.parameter_id.in_([p.id for p in parameters_by_name.values()]),
                SynthesisValue.data_source_id.in_(list(source_ids)),
            )
        )
        existing = {(v.data_source_id, v.parameter_id): v for v in rows.scalars().all()}

        stored = 0
        for source_id, parameter_values in extracted.items():
            if source_id not in source_ids or not isinstance(parameter_values, dict):
                continue
            for name, value_data in parameter_values.items():
                param = parameters_by_name.get(name)
                if param is None or not value_data:
                    continue
                if not isinstance(value_data, dict):
                    value_data = {"value": value_data}
                raw_value = value_data.get("value")
                if raw_value is None or raw_value == "":
                    continue

                cell = existing.get((source_id, param.id))
                if cell is not None and cell.is_verified:
                    continue
                if cell is None:
                    cell = SynthesisValue(parameter_id=param.id, data_source_id=source_id, is_verified=False)
                    db.add(cell)
                    existing[(source_id, param.id)] = cell
                cell.extracted_value = as_text(raw_value)
                cell.confidence = coerce_confidence(value_data.get("confidence"))
                cell.context = as_text(value_data.get("context"))
                stored += 1

        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("synthesis.values.insert_failed", error=str(exc))
            return 0
        return stored

    # ── Matrix reads and edits ───────────────────────────────────────────────

    async def _matrix_rows(self, db, project: Project):
        sources = (await db.execute(
            select(DataSource)
            .where(DataSource.project_id == project.id, DataSource.status == STATUS_PROCESSED)
            .order_by(DataSource.created_at.desc())
        )).scalars().all()
        parameters = (await db.execute(
            select(SynthesisParameter)
            .where(SynthesisParameter.project_id == project.id)
            .order_by(SynthesisParameter.display_order, SynthesisParameter.created_at)
        )).scalars().all()
        values = []
        if parameters:
            values = (await db.execute(
                select(SynthesisValue)
                .where(SynthesisValue.parameter_id.in_([p.id for p in parameters]))
            )).scalars().all()
        return sources, parameters, values

    async def build_matrix(self, db, project: Project) -> dict:
        sources, parameters, values = await self._matrix_rows(db, project)
        return {
            "project": project.to_dict(),
            "dataSources": [s.to_dict() for s in sources],
            "parameters": [p.to_dict() for p in parameters],
            "cells": [cell_dict(v) for v in values],
            "stats": {"processedCount": len(sources), "parametersCount": len(parameters)},
        }

    async def timeline(self, db, project: Project, parameter_name: Optional[str] = None) -> dict:
        sources, parameters, values = await self._matrix_rows(db, project)
        events = build_timeline(sources, parameters, values)
        payload = {
            "events": [{**e, "date": e["date"].isoformat()} for e in events],
            "parameters": [p.name for p in parameters],
        }
        if parameter_name:
            payload["trends"] = build_trends(events, parameter_name)
        return payload

    async def add_parameter(self, db, project: Project, name: str, type: str, description: Optional[str]):
        param = SynthesisParameter(
            project_id=project.id,
            name=name,
            type=type,
            description=description,
            is_system=False,
            display_order=await self._next_display_order(db, project.id),
        )
        db.add(param)
        await db.commit()
        logger.info("synthesis.parameter.added", project_id=project.id, parameter_id=param.id)
        return param

    async def set_cell_value(self, db, project: Project, data_source_id: str, parameter_id: str, value):
        """Upsert a human-entered value; the cell becomes verified."""
        source = await db.scalar(
            select(DataSource).where(DataSource.id == data_source_id, DataSource.project_id == project.id)
        )
        if not source:
            raise SynthesisError(404, "Data source not found")
        param = await db.scalar(
            select(SynthesisParameter)
            .where(SynthesisParameter.id == parameter_id, SynthesisParameter.project_id == project.id)
        )
        if not param:
            raise SynthesisError(404, "Parameter not found")

        cell = await db.scalar(
            select(SynthesisValue).where(
                SynthesisValue.parameter_id == parameter_id,
                SynthesisValue.data_source_id == data_source_id,
            )
        )
        if cell is None:
            cell = SynthesisValue(parameter_id=parameter_id, data_source_id=data_source_id)
            db.add(cell)
        cell.value = value
        cell.is_verified = True
        await db.commit()
        await db.refresh(cell)
        return cell
