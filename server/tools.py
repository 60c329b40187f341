"""Tool declarations and argument validation for the tool surface."""
from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from jsonschema import Draft7Validator

from config import (
    ASPECT_RATIOS,
    AVAILABLE_MODELS,
    BATCH_MAX_ITEMS,
    BATCH_MIN_ITEMS,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_FILENAME_PREFIX,
    DEFAULT_MODEL,
    OUTPUT_EXTENSION,
)
from jobs.errors import NotFoundError, ValidationError
from jobs.service import JobService

_ASPECT_RATIO_PROPERTY = {
    "type": "string",
    "enum": list(ASPECT_RATIOS),
    "default": DEFAULT_ASPECT_RATIO,
    "description": "Image shape: 1:1 (square), 3:4 (portrait), 4:3 (landscape), 9:16 (phone vertical), 16:9 (widescreen)",
}

_MODEL_PROPERTY = {
    "type": "string",
    "enum": list(AVAILABLE_MODELS),
    "default": DEFAULT_MODEL,
    "description": (
        f"Which model to use: {DEFAULT_MODEL} (best quality, slower), "
        "gemini-2.5-flash-image (faster, good quality)"
    ),
}

_PROMPT_PROPERTY = {
    "type": "string",
    "minLength": 1,
    "description": "Describe what you want to see in the image (e.g. 'a sunset over mountains')",
}


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Callable[[JobService, Dict[str, Any]], Dict[str, Any]]

    def declaration(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": deepcopy(self.input_schema)}


def _object(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


TOOLS: List[Tool] = [
    Tool(
        name="submit_job",
        description=(
            "Create an AI-generated image from a text description. Returns a job ID immediately - "
            "use get_job_status to see when it's ready, then save_job_result to download it."
        ),
        input_schema=_object(
            {"prompt": _PROMPT_PROPERTY, "aspectRatio": _ASPECT_RATIO_PROPERTY, "model": _MODEL_PROPERTY},
            ["prompt"],
        ),
        handler=lambda service, args: service.submit_job(args["prompt"], args["aspectRatio"], args["model"]),
    ),
    Tool(
        name="get_job_status",
        description=(
            "Check if an image is done generating. Shows whether it's still processing, "
            "completed and ready to save, or failed."
        ),
        input_schema=_object(
            {"jobId": {"type": "string", "description": "The job ID you received from submit_job"}},
            ["jobId"],
        ),
        handler=lambda service, args: service.get_job_status(args["jobId"]),
    ),
    Tool(
        name="save_job_result",
        description=(
            f"Save a completed image to disk as a {OUTPUT_EXTENSION} file. Only works after the image "
            "has finished generating (check with get_job_status first)."
        ),
        input_schema=_object(
            {
                "jobId": {"type": "string", "description": "The job ID from your completed image generation"},
                "filePath": {
                    "type": "string",
                    "description": f"Where to save the image (full path including filename, must end with {OUTPUT_EXTENSION})",
                },
            },
            ["jobId", "filePath"],
        ),
        handler=lambda service, args: service.save_job_result(args["jobId"], args["filePath"]),
    ),
    Tool(
        name="list_jobs",
        description="See all image generation requests and whether they're still processing, completed, or failed.",
        input_schema=_object({}, []),
        handler=lambda service, args: service.list_jobs(),
    ),
    Tool(
        name="submit_batch",
        description=(
            f"Generate up to {BATCH_MAX_ITEMS} images at once. Each prompt may override the batch "
            "aspect ratio and model. Returns a batch ID immediately - use get_batch_status to follow "
            "progress and save_batch_results to save every finished image."
        ),
        input_schema=_object(
            {
                "prompts": {
                    "type": "array",
                    "minItems": BATCH_MIN_ITEMS,
                    "maxItems": BATCH_MAX_ITEMS,
                    "items": {
                        "oneOf": [
                            _PROMPT_PROPERTY,
                            _object(
                                {
                                    "prompt": _PROMPT_PROPERTY,
                                    "aspectRatio": {key: value for key, value in _ASPECT_RATIO_PROPERTY.items() if key != "default"},
                                    "model": {key: value for key, value in _MODEL_PROPERTY.items() if key != "default"},
                                },
                                ["prompt"],
                            ),
                        ]
                    },
                    "description": "Prompts to generate, in order; saved files are numbered in this order",
                },
                "aspectRatio": _ASPECT_RATIO_PROPERTY,
                "model": _MODEL_PROPERTY,
            },
            ["prompts"],
        ),
        handler=lambda service, args: service.submit_batch(args["prompts"], args["aspectRatio"], args["model"]),
    ),
    Tool(
        name="get_batch_status",
        description="Check the progress of a batch: overall status, per-status counts and the state of every image.",
        input_schema=_object(
            {"batchId": {"type": "string", "description": "The batch ID you received from submit_batch"}},
            ["batchId"],
        ),
        handler=lambda service, args: service.get_batch_status(args["batchId"]),
    ),
    Tool(
        name="save_batch_results",
        description=(
            f"Save every completed image of a batch into a directory as <prefix>_<n>{OUTPUT_EXTENSION}. "
            "Images that are not ready or failed are reported without stopping the others."
        ),
        input_schema=_object(
            {
                "batchId": {"type": "string", "description": "The batch ID you received from submit_batch"},
                "directory": {"type": "string", "description": "Directory to write the images into (created if missing)"},
                "filenamePrefix": {
                    "type": "string",
                    "minLength": 1,
                    "default": DEFAULT_FILENAME_PREFIX,
                    "description": "Prefix of the saved file names",
                },
            },
            ["batchId", "directory"],
        ),
        handler=lambda service, args: service.save_batch_results(
            args["batchId"], args["directory"], args["filenamePrefix"]
        ),
    ),
    Tool(
        name="list_batches",
        description="See all submitted batches with their current overall status.",
        input_schema=_object({}, []),
        handler=lambda service, args: service.list_batches(),
    ),
]

TOOLS_BY_NAME: Dict[str, Tool] = {tool.name: tool for tool in TOOLS}

# Tool names of the first release, still accepted.
TOOL_ALIASES = {
    "generate_image": "submit_job",
    "check_job_status": "get_job_status",
    "save_image": "save_job_result",
}


def list_tools() -> List[Dict[str, Any]]:
    return [tool.declaration() for tool in TOOLS]


def resolve_tool(name: str) -> Tool:
    tool = TOOLS_BY_NAME.get(TOOL_ALIASES.get(name, name))
    if tool is None:
        raise NotFoundError(f"Unknown tool: {name}")
    return tool


def validate_arguments(tool: Tool, arguments: Any) -> Dict[str, Any]:
    """Check ``arguments`` against the tool schema and fill in defaults."""

    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValidationError("Invalid arguments: expected a JSON object")

    validator = Draft7Validator(tool.input_schema)
    errors = sorted(validator.iter_errors(arguments), key=lambda err: list(err.absolute_path))
    if errors:
        details = []
        for error in errors:
            location = ".".join(str(part) for part in error.absolute_path) or "arguments"
            details.append(f"{location}: {error.message}")
        raise ValidationError(f"Invalid arguments: {'; '.join(details)}", details=details)

    resolved = dict(arguments)
    for key, spec in tool.input_schema.get("properties", {}).items():
        if key not in resolved and "default" in spec:
            resolved[key] = spec["default"]
    return resolved


def call_tool(service: JobService, name: str, arguments: Any) -> Dict[str, Any]:
    tool = resolve_tool(name)
    return tool.handler(service, validate_arguments(tool, arguments))


__all__ = ["TOOLS", "TOOL_ALIASES", "Tool", "call_tool", "list_tools", "resolve_tool", "validate_arguments"]
