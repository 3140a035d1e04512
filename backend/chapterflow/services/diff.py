"""原稿与校对稿对比"""
import difflib
from typing import List, Optional


def _paragraph_count(text: str) -> int:
    return len([p for p in text.split("\n\n") if p.strip()])


def compare_bodies(original: Optional[str], edited: Optional[str]) -> dict:
    """
    逐字对比原稿和校对稿

    替换片段拆成一段删除加一段插入，便于前端按增删着色。

    Returns:
        similarity / difference（百分比）、段落数、字数和 segments 列表
    """
    original = original or ""
    edited = edited or ""

    matcher = difflib.SequenceMatcher(None, original, edited, autojunk=False)
    segments: List[dict] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "replace":
            segments.append({"op": "delete", "text": original[i1:i2]})
            segments.append({"op": "insert", "text": edited[j1:j2]})
        elif tag == "insert":
            segments.append({"op": "insert", "text": edited[j1:j2]})
        else:
            segments.append({"op": tag, "text": original[i1:i2]})

    similarity = matcher.ratio() if (original or edited) else 1.0
    return {
        "similarity": round(similarity * 100, 2),
        "difference": round((1 - similarity) * 100, 2),
        "original_length": len(original),
        "edited_length": len(edited),
        "original_paragraph_count": _paragraph_count(original),
        "edited_paragraph_count": _paragraph_count(edited),
        "segments": segments,
    }
