"""Raw call graph schema supplied by the analysis collaborator.

These Pydantic v2 models define the strict JSON schema that an external
analysis tool writes and that :class:`callvis.graph.model.GraphModel`
is built from.  Only structural facts live here; nothing is filtered yet.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RawPackage(BaseModel):
    """A package (import path) of the analysed program.

    Attributes:
        path: Import path, the package identity.
        name: Declared package name; defaults to the last path segment.
        std: Whether the package belongs to the language's standard library.
    """

    path: str = Field(..., min_length=1, description="Import path.")
    name: Optional[str] = Field(None, description="Declared package name.")
    std: bool = Field(False, description="Standard-library package.")


class RawFunction(BaseModel):
    """A single function or method.

    Attributes:
        id: Fully-qualified signature, unique within one analysis run.
        name: Short function name.
        package: Import path of the declaring package.
        receiver: Receiver type name for methods.
        exported: Exported flag; derived from ``name`` when omitted.
        synthetic: Compiler-generated wrapper or closure.
        test: Declared in test code.
    """

    id: str = Field(..., min_length=1, description="Fully-qualified signature.")
    name: str = Field(..., min_length=1, description="Short function name.")
    package: str = Field(..., min_length=1, description="Declaring package path.")
    receiver: Optional[str] = Field(None, description="Receiver type for methods.")
    exported: Optional[bool] = Field(None, description="Exported flag.")
    synthetic: bool = Field(False, description="Compiler-generated function.")
    test: bool = Field(False, description="Declared in test code.")


class RawCall(BaseModel):
    """One call site from ``caller`` to ``callee``.

    Attributes:
        caller: ``id`` of the calling function.
        callee: ``id`` of the called function.
        dynamic: Whether the call dispatches dynamically (interface or
            function value) rather than statically.
    """

    caller: str = Field(..., description="Calling function id.")
    callee: str = Field(..., description="Called function id.")
    dynamic: bool = Field(False, description="Dynamic dispatch.")


class RawCallGraph(BaseModel):
    """Complete call graph document produced by the analysis tool.

    Attributes:
        packages: Known packages.  Functions may reference unlisted ones.
        functions: All functions discovered.
        calls: All call sites, possibly several per caller/callee pair.
    """

    packages: list[RawPackage] = Field(default_factory=list, description="Known packages.")
    functions: list[RawFunction] = Field(default_factory=list, description="Discovered functions.")
    calls: list[RawCall] = Field(default_factory=list, description="Call sites.")
