from dpl.schemas.schemas import (
    DplRequest, DplResponse,
    RecordResponse, DiagnosticResponse, HeadingResponse,
    ParameterDefinitionResponse,
    NamespaceResponse,
)

__all__ = [
    "DplRequest", "DplResponse",
    "RecordResponse", "DiagnosticResponse", "HeadingResponse",
    "ParameterDefinitionResponse",
    "NamespaceResponse",
]
