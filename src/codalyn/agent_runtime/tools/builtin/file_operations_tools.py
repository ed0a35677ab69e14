"""File-system tools operating on the project sandbox.

Paths are relative to the workspace root; each sandbox backend rejects paths
that escape it.
"""

import re
from typing import Any

from pydantic import BaseModel, Field

from ...models.error_types import ToolExecutionError
from ..base import SandboxTool

DEFAULT_CHUNK_SIZE = 1000


def chunk_text(text: str, size: int) -> list[str]:
    """Split text into chunks of at most size characters, preferring line breaks."""
    if not text:
        return [""]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > size:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:size])
            line = line[size:]
        if current and len(current) + len(line) > size:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return chunks


class ReadFileParams(BaseModel):
    path: str = Field(min_length=1, description="Path to the file relative to workspace root")
    chunk: bool = Field(
        default=False,
        description="Return the file in chunks (useful for large files)",
    )
    chunk_index: int | None = Field(
        default=None,
        ge=0,
        description="Chunk to return (0-indexed); all chunks when omitted",
    )
    max_chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=1,
        description="Maximum characters per chunk when chunk=true",
    )


class ReadFileTool(SandboxTool):
    name = "read_file"
    description = (
        "Read the contents of a file from the workspace. Supports chunking for "
        "large files. Use this to examine project files before making changes."
    )
    params_model = ReadFileParams

    async def execute(self, params: ReadFileParams) -> Any:
        content = await self.sandbox.read_file(params.path)
        if not params.chunk:
            return content

        chunks = chunk_text(content, params.max_chunk_size)
        if params.chunk_index is None:
            return {"path": params.path, "chunks": chunks, "total_chunks": len(chunks)}
        if params.chunk_index >= len(chunks):
            raise ToolExecutionError(
                f"Chunk index {params.chunk_index} out of range. "
                f"File has {len(chunks)} chunks."
            )
        return {
            "path": params.path,
            "chunk": chunks[params.chunk_index],
            "chunk_index": params.chunk_index,
            "total_chunks": len(chunks),
        }


class WriteFileParams(BaseModel):
    path: str = Field(min_length=1, description="Path to the file relative to workspace root")
    content: str = Field(description="Full content of the file to write")


class WriteFileTool(SandboxTool):
    name = "write_file"
    description = "Write or create a file in the workspace"
    params_model = WriteFileParams

    async def execute(self, params: WriteFileParams) -> str:
        await self.sandbox.write_file(params.path, params.content)
        self.logger.info("file_written", path=params.path, size=len(params.content))
        return f"Wrote {params.path}"


class ListDirectoryParams(BaseModel):
    path: str = Field(default=".", description="Directory relative to workspace root")


class ListDirectoryTool(SandboxTool):
    name = "list_directory"
    description = "List files and directories in a directory"
    params_model = ListDirectoryParams

    async def execute(self, params: ListDirectoryParams) -> list[str]:
        return await self.sandbox.readdir(params.path)


class CreateDirectoryParams(BaseModel):
    path: str = Field(min_length=1, description="Directory relative to workspace root")
    recursive: bool = Field(default=True, description="Create missing parent directories")


class CreateDirectoryTool(SandboxTool):
    name = "create_directory"
    description = "Create a directory in the workspace"
    params_model = CreateDirectoryParams

    async def execute(self, params: CreateDirectoryParams) -> str:
        await self.sandbox.mkdir(params.path, recursive=params.recursive)
        return f"Created {params.path}"


class DeletePathParams(BaseModel):
    path: str = Field(min_length=1, description="Path to delete relative to workspace root")
    recursive: bool = Field(default=False, description="Recursively delete directories")


class DeletePathTool(SandboxTool):
    name = "delete_path"
    description = "Delete a file or directory"
    params_model = DeletePathParams

    async def execute(self, params: DeletePathParams) -> str:
        await self.sandbox.delete_path(params.path, recursive=params.recursive)
        self.logger.info("path_deleted", path=params.path, recursive=params.recursive)
        return f"Deleted {params.path}"


class GlobSearchParams(BaseModel):
    pattern: str = Field(min_length=1, description="Glob pattern (e.g. 'src/**/*.ts')")


class GlobSearchTool(SandboxTool):
    name = "glob_search"
    description = "Search for files matching a glob pattern"
    params_model = GlobSearchParams

    async def execute(self, params: GlobSearchParams) -> list[str]:
        return await self.sandbox.glob(params.pattern)


class ReplaceInFileParams(BaseModel):
    path: str = Field(min_length=1, description="Path to the file relative to workspace root")
    find: str = Field(min_length=1, description="Text (or regular expression) to find")
    replace: str = Field(description="Replacement text")
    replace_all: bool = Field(default=True, description="Replace every occurrence")
    regex: bool = Field(default=False, description="Treat find as a regular expression")
    case_sensitive: bool = Field(default=True, description="Match case")


class ReplaceInFileTool(SandboxTool):
    name = "replace_in_file"
    description = "Find and replace text in a file without rewriting it by hand"
    params_model = ReplaceInFileParams

    async def execute(self, params: ReplaceInFileParams) -> dict[str, Any]:
        content = await self.sandbox.read_file(params.path)

        source = params.find if params.regex else re.escape(params.find)
        flags = 0 if params.case_sensitive else re.IGNORECASE
        try:
            pattern = re.compile(source, flags)
        except re.error as e:
            raise ToolExecutionError(f"Invalid regular expression: {e}") from e

        replacement = params.replace if params.regex else params.replace.replace("\\", "\\\\")
        updated, count = pattern.subn(replacement, content, count=0 if params.replace_all else 1)
        if count == 0:
            raise ToolExecutionError(f"Text not found in {params.path}")

        await self.sandbox.write_file(params.path, updated)
        return {"path": params.path, "replacements": count}
