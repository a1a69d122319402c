"""Markdown export for finished artifacts.

Rendering rules:
- The artifact title (or a per-language default) becomes the document heading
- Each top-level artifact section becomes a level-2 heading
- Array-valued fields become bullet lists
- Nested object fields become sub-headings, one level deeper per nesting
- Arrays of objects render one sub-heading per item, titled by its name/title field

Rendering is pure and deterministic: field order follows the artifact, labels
come from fixed tables, and nothing is fetched or generated.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader
from pydantic import BaseModel

MARKDOWN_TEMPLATE_DIR = Path(__file__).parent / "templates" / "markdown"

MAX_HEADING_LEVEL = 6

SECTION_LABELS: dict[str, dict[str, str]] = {
    "ja": {
        # Document titles
        "analysis_result": "分析結果",
        # Framework analysis
        "initial_analysis": "初期分析",
        "deep_analysis": "詳細分析",
        "final_recommendations": "最終提案",
        "key_points": "要点",
        "opportunities": "機会",
        "challenges": "課題",
        "recommendations": "推奨事項",
        "strategic_moves": "戦略的施策",
        "action_items": "アクションアイテム",
        "risk_factors": "リスク要因",
        "company_insights": "自社に関する洞察",
        "customer_insights": "顧客に関する洞察",
        "competitor_insights": "競合に関する洞察",
        "product_insights": "製品に関する洞察",
        "price_insights": "価格に関する洞察",
        "place_insights": "流通に関する洞察",
        "promotion_insights": "プロモーションに関する洞察",
        "political_insights": "政治的要因に関する洞察",
        "economic_insights": "経済的要因に関する洞察",
        "social_insights": "社会的要因に関する洞察",
        "technological_insights": "技術的要因に関する洞察",
        # Concept
        "value_proposition": "提供価値",
        "target_customer": "ターゲット顧客",
        "advantage": "優位性",
        "alternatives": "その他の候補",
        "summary": "分析サマリー",
        "correlation": "相関分析",
        "insights": "洞察",
        "risks": "リスク",
        "applied_constraints": "適用条件",
        "previous": "調整前のコンセプト",
        "budget": "予算",
        "timeline": "期間",
        "team_size": "チーム規模",
        "technical_constraints": "技術的制約",
        # Requirement document
        "title": "タイトル",
        "name": "名称",
        "purpose": "目的",
        "background": "背景",
        "goals": "目標",
        "expected_effects": "期待される効果",
        "overview": "概要",
        "target_users": "対象ユーザー",
        "features": "機能一覧",
        "priority": "優先度",
        "description": "説明",
        "acceptance_criteria": "受け入れ基準",
        "non_functional_requirements": "非機能要件",
        "performance": "パフォーマンス",
        "security": "セキュリティ",
        "availability": "可用性",
        "scalability": "拡張性",
        "maintainability": "保守性",
        "api_requirements": "API要件",
        "external_apis": "外部API",
        "internal_apis": "内部API",
        "endpoint": "エンドポイント",
        "auth_method": "認証方式",
        "request_response": "リクエスト/レスポンス",
        "screen_list": "画面一覧",
        "path": "パス",
        "main_features": "主な機能",
        "tech_stack": "技術スタック",
        "frontend": "フロントエンド",
        "backend": "バックエンド",
        "database": "データベース",
        "infrastructure": "インフラストラクチャ",
        "ui_ux_requirements": "UI/UX要件",
        "design_system": "デザインシステム",
        "layout": "レイアウト",
        "responsive": "レスポンシブ対応",
        "accessibility": "アクセシビリティ",
        "special_features": "特別機能",
        "schedule": "開発スケジュール",
        "phases": "フェーズ",
        "duration": "期間",
        "tasks": "タスク",
    },
    "en": {
        "analysis_result": "Analysis Result",
        "initial_analysis": "Initial Analysis",
        "deep_analysis": "Deep Analysis",
        "final_recommendations": "Final Recommendations",
        "ui_ux_requirements": "UI/UX Requirements",
        "api_requirements": "API Requirements",
        "external_apis": "External APIs",
        "internal_apis": "Internal APIs",
    },
}

VALUE_LABELS: dict[str, dict[str, str]] = {
    "ja": {"true": "あり", "false": "なし", "empty": "（なし）"},
    "en": {"true": "Yes", "false": "No", "empty": "(none)"},
}

# Item fields used as the sub-heading of an object inside an array
_ITEM_TITLE_FIELDS = ("name", "title")

# Line starts that Markdown would read as a heading, list, quote or setext underline
_BLOCK_MARKER = re.compile(r"^([ \t]*)([#>*+=-])", re.MULTILINE)


@dataclass(frozen=True)
class _Block:
    kind: str  # heading | paragraph | list
    text: str = ""
    level: int = 0
    entries: tuple[tuple[int, str], ...] = ()


class MarkdownExporter:
    """Render artifacts as Markdown documents.

    The language selects heading labels ("ja" or "en"); unknown keys fall back
    to a title-cased version of the field name.
    """

    def __init__(self, language: str = "ja"):
        if language not in SECTION_LABELS:
            raise ValueError(f"Unsupported language: {language}")
        self.language = language
        self.env = Environment(
            loader=FileSystemLoader(str(MARKDOWN_TEMPLATE_DIR)),
            autoescape=False,  # Markdown should NOT be escaped
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def to_structured_text(self, artifact: BaseModel | dict, title: str | None = None) -> str:
        """Render an artifact as a Markdown string.

        Args:
            artifact: Finished artifact (Pydantic model or plain dict)
            title: Document heading; defaults to the artifact's own title field,
                   then to the per-language "analysis result" label

        Returns:
            Markdown text ending in exactly one newline
        """
        data = self._as_data(artifact)
        if title is None and isinstance(data.get("title"), str):
            title = data["title"]
            data = {key: value for key, value in data.items() if key != "title"}
        if title is None:
            title = self.label("analysis_result")

        blocks: list[_Block] = []
        for key, value in data.items():
            if value is None:
                continue
            blocks.append(_Block(kind="heading", text=self.label(key), level=2))
            blocks.extend(self._value_blocks(value, level=3))

        template = self.env.get_template("document.md.j2")
        rendered = template.render(title=_one_line(title), blocks=blocks)
        return rendered.rstrip("\n") + "\n"

    def label(self, key: str) -> str:
        labels = SECTION_LABELS[self.language]
        if key in labels:
            return labels[key]
        return key.replace("_", " ").strip().title()

    @staticmethod
    def _as_data(value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json", exclude_none=True)
        return value

    def _value_blocks(self, value: Any, level: int) -> list[_Block]:
        value = self._as_data(value)
        if isinstance(value, dict):
            return self._object_blocks(value, level)
        if isinstance(value, list):
            if value and all(isinstance(item, dict) for item in value):
                return self._object_list_blocks(value, level)
            return [self._list_block(value)]
        return [_Block(kind="paragraph", text=_escape_block_markers(self._scalar(value)))]

    def _object_blocks(self, value: dict, level: int) -> list[_Block]:
        blocks: list[_Block] = []
        for key, item in value.items():
            if item is None:
                continue
            blocks.append(self._heading(self.label(key), level))
            blocks.extend(self._value_blocks(item, level + 1))
        return blocks

    def _object_list_blocks(self, items: list[dict], level: int) -> list[_Block]:
        blocks: list[_Block] = []
        for position, item in enumerate(items, start=1):
            title_field = next((name for name in _ITEM_TITLE_FIELDS if isinstance(item.get(name), str)), None)
            heading = item[title_field] if title_field else f"{position}"
            blocks.append(self._heading(_one_line(heading), level))
            rest = {key: field for key, field in item.items() if key != title_field}
            blocks.extend(self._object_blocks(rest, level + 1))
        return blocks

    def _list_block(self, items: list) -> _Block:
        entries = list(self._list_entries(items, indent=0))
        if not entries:
            entries = [(0, VALUE_LABELS[self.language]["empty"])]
        return _Block(kind="list", entries=tuple(entries))

    def _list_entries(self, items: list, indent: int):
        for item in items:
            if isinstance(item, list):
                yield from self._list_entries(item, indent + 1)
            else:
                yield (indent, _one_line(self._scalar(item)))

    def _heading(self, text: str, level: int) -> _Block:
        if level > MAX_HEADING_LEVEL:
            return _Block(kind="paragraph", text=f"**{text}**")
        return _Block(kind="heading", text=text, level=level)

    def _scalar(self, value: Any) -> str:
        if isinstance(value, bool):
            return VALUE_LABELS[self.language]["true" if value else "false"]
        if isinstance(value, str):
            return value
        if isinstance(value, dict):
            return json.dumps(value, ensure_ascii=False, sort_keys=True)
        return str(value)


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _escape_block_markers(text: str) -> str:
    """Backslash-escape line starts so generated text stays inside its paragraph."""
    return _BLOCK_MARKER.sub(r"\1\\\2", text)
