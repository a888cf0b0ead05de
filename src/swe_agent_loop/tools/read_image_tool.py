import asyncio
import io
from pathlib import Path
from typing import Any

from PIL import Image

from swe_agent_loop.content import ContentBlock, ImageBlock


def _to_webp(path: Path) -> bytes:
    with Image.open(path) as image:
        out = io.BytesIO()
        image.save(out, format="WEBP")
        return out.getvalue()


class ReadImageTool:
    @property
    def name(self) -> str:
        return "read_image"

    @property
    def description(self) -> str:
        return (
            "Read an image from the local file system to see its visual details. "
            "Internet URLs are not accepted; download the image locally first."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "imagePath": {
                    "type": "string",
                    "description": "Absolute local path to the image",
                },
            },
            "required": ["imagePath"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> list[ContentBlock]:
        path = Path(tool_input["imagePath"]).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"No such file: {path}")
        data = await asyncio.to_thread(_to_webp, path)
        return [ImageBlock(format="webp", data=data)]
