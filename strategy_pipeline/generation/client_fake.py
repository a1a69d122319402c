"""GenerationClientFake: Scripted test double for the GenerationClient protocol.

Returns a fixed script of responses, one per invoke() call, and records every
prompt it was given. for_pipeline() builds the script for a named scenario:
- happy_path: Realistic valid output for every stage
- transport_error: TransportError at the chosen stage
- service_error: ServiceError at the chosen stage
- malformed_response: MalformedResponseError at the chosen stage
- missing_keys: The chosen stage returns JSON without its required keys
- empty_candidates: The concept proposal stage returns no candidates

All scenarios return instantly (no network, no delays).
"""

import asyncio
import copy
from collections.abc import Iterable
from typing import Any

from strategy_pipeline.core.exceptions import MalformedResponseError, ServiceError, TransportError
from strategy_pipeline.schemas.pipeline import PipelineType

HAPPY_PATH_OUTPUTS: dict[str, dict] = {
    "initial_analysis": {
        "key_points": ["国内SaaS市場でのブランド認知は高い", "中小企業の顧客比率が増加している"],
        "opportunities": ["地方中小企業のDX需要", "既存顧客へのアップセル"],
        "challenges": ["大手競合の価格攻勢", "カスタマーサクセス人員の不足"],
    },
    "deep_analysis_3c": {
        "company_insights": ["導入支援のノウハウが強み", "開発リソースは限定的"],
        "customer_insights": ["導入の手軽さを最重視している", "サポート品質で継続を判断する"],
        "competitor_insights": ["大手は機能の網羅性で勝負している", "新興企業は低価格で参入している"],
        "recommendations": ["導入支援をパッケージ化する", "中小企業向けプランを新設する"],
    },
    "deep_analysis_4p": {
        "product_insights": ["コア機能の完成度は高い"],
        "price_insights": ["月額制の価格帯が競合より高い"],
        "place_insights": ["オンライン直販のみで販路が狭い"],
        "promotion_insights": ["導入事例の発信が不足している"],
        "recommendations": ["販売パートナー制度を立ち上げる"],
    },
    "deep_analysis_pest": {
        "political_insights": ["電子帳簿保存法の改正が追い風"],
        "economic_insights": ["人件費の上昇で省力化投資が増える"],
        "social_insights": ["リモートワークが定着している"],
        "technological_insights": ["生成AIの業務適用が急速に進んでいる"],
        "recommendations": ["法改正対応を訴求した販促を行う"],
    },
    "final_recommendations": {
        "strategic_moves": ["中小企業向けセグメントに集中する"],
        "action_items": ["3か月以内に導入支援パッケージを販売開始する"],
        "risk_factors": ["価格競争への巻き込まれ"],
    },
    "summarize": {
        "key_points": ["中小企業の省力化需要が強い"],
        "opportunities": ["法改正に伴う業務見直し"],
        "challenges": ["導入時の負担感"],
    },
    "correlate": {
        "insights": ["法改正と人手不足が同時に導入動機を強めている"],
        "opportunities": ["導入支援込みの定額サービス"],
        "risks": ["大手の同種サービス参入"],
    },
    "propose": {
        "candidates": [
            {
                "title": "まるごと経理DXパック",
                "value_proposition": "導入から定着まで伴走する定額の経理自動化サービス",
                "target_customer": "従業員50名以下の中小企業",
                "advantage": "導入支援のノウハウと法改正対応の速さ",
            },
            {
                "title": "経理アシスタントAI",
                "value_proposition": "仕訳と証憑整理をAIが代行する",
                "target_customer": "経理担当者が1名の小規模事業者",
                "advantage": "既存会計ソフトとの連携",
            },
        ]
    },
    "refine_concept": {
        "title": "まるごと経理DXパック ライト",
        "value_proposition": "初期費用ゼロで始められる経理自動化サービス",
        "target_customer": "従業員20名以下の小規模事業者",
        "advantage": "3か月で定着まで伴走する支援体制",
    },
    "requirements": {
        "title": "経理DXパック 要件定義書",
        "purpose": {
            "background": "中小企業の経理業務は手作業が多い",
            "goals": ["月次決算の工数を半減する"],
            "expected_effects": ["経理担当者の残業削減"],
        },
        "overview": "証憑の取り込みから仕訳作成までを自動化するWebアプリケーション",
        "target_users": "中小企業の経理担当者と経営者",
        "features": [
            {
                "name": "証憑アップロード",
                "priority": "high",
                "description": "領収書や請求書を画像で取り込む",
                "acceptance_criteria": ["PDFとJPEGを受け付ける", "10秒以内に読み取り結果を表示する"],
            },
            {
                "name": "仕訳提案",
                "priority": "medium",
                "description": "読み取り結果から仕訳を提案する",
                "acceptance_criteria": ["提案を1クリックで確定できる"],
            },
        ],
        "non_functional_requirements": {
            "performance": ["画面表示は2秒以内"],
            "security": ["通信はすべてTLSで暗号化する"],
            "availability": ["稼働率99.9%"],
            "scalability": ["利用企業1万社まで対応する"],
            "maintainability": ["主要機能の自動テストを整備する"],
        },
        "api_requirements": {
            "external_apis": [
                {
                    "name": "会計ソフト連携API",
                    "purpose": "確定した仕訳を送信する",
                    "endpoint": "https://api.example.com/v1/journals",
                    "auth_method": "OAuth 2.0",
                }
            ],
            "internal_apis": [
                {
                    "name": "証憑API",
                    "purpose": "証憑の登録と取得",
                    "endpoint": "/api/receipts",
                    "request_response": "multipart/form-data で送信し JSON で受け取る",
                }
            ],
        },
        "screen_list": [
            {
                "name": "ダッシュボード",
                "path": "/",
                "description": "未処理の証憑と今月の進捗を表示する",
                "main_features": ["未処理件数の表示", "月次進捗グラフ"],
            }
        ],
        "tech_stack": {
            "frontend": ["React", "TypeScript"],
            "backend": ["Python", "FastAPI"],
            "database": ["PostgreSQL"],
            "infrastructure": ["AWS"],
        },
        "ui_ux_requirements": {
            "design_system": "社内デザインシステム",
            "layout": "左サイドバーとメインエリアの2カラム",
            "responsive": True,
            "accessibility": ["キーボード操作に対応する"],
            "special_features": ["ドラッグ&ドロップでのアップロード"],
        },
        "schedule": {
            "phases": [
                {"name": "要件確定", "duration": "2週間", "tasks": ["ヒアリング", "画面設計"]},
                {"name": "MVP開発", "duration": "8週間", "tasks": ["証憑アップロード", "仕訳提案"]},
            ]
        },
    },
}

_DEEP_ANALYSIS_KEYS = {
    PipelineType.FRAMEWORK_3C: "deep_analysis_3c",
    PipelineType.FRAMEWORK_4P: "deep_analysis_4p",
    PipelineType.FRAMEWORK_PEST: "deep_analysis_pest",
}

# Output keys of each pipeline's stages, in stage order
_PIPELINE_OUTPUT_KEYS: dict[PipelineType, tuple[str, ...]] = {
    **{
        pipeline_type: ("initial_analysis", deep_key, "final_recommendations")
        for pipeline_type, deep_key in _DEEP_ANALYSIS_KEYS.items()
    },
    PipelineType.CONCEPT_GENERATION: ("summarize", "correlate", "propose"),
    PipelineType.CONCEPT_REFINEMENT: ("refine_concept",),
    PipelineType.REQUIREMENT_GENERATION: ("requirements",),
    PipelineType.REQUIREMENT_REFINEMENT: ("requirements",),
}


class GenerationClientFake:
    """Scripted test double for the GenerationClient protocol.

    Each invoke() consumes the next script entry: exceptions are raised,
    anything else is returned as the parsed JSON value.
    """

    VALID_SCENARIOS = {
        "happy_path",
        "transport_error",
        "service_error",
        "malformed_response",
        "missing_keys",
        "empty_candidates",
    }

    def __init__(self, script: Iterable[Any]):
        self.script = list(script)
        self.prompts: list[str] = []

    @classmethod
    def for_pipeline(
        cls,
        pipeline_type: PipelineType | str,
        scenario: str = "happy_path",
        fail_at: int | None = None,
    ) -> "GenerationClientFake":
        """Build a fake scripted for one run of a pipeline.

        Args:
            pipeline_type: Pipeline the script is for
            scenario: One of VALID_SCENARIOS
            fail_at: Zero-based stage index where the failure scenarios strike
                     (defaults to the last stage)

        Raises:
            ValueError: Unknown scenario, a fail_at outside the stage sequence,
                        or empty_candidates for a pipeline without a proposal stage
        """
        if scenario not in cls.VALID_SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}. Valid scenarios: {cls.VALID_SCENARIOS}")
        pipeline_type = PipelineType(pipeline_type)
        keys = _PIPELINE_OUTPUT_KEYS[pipeline_type]
        script: list[Any] = [copy.deepcopy(HAPPY_PATH_OUTPUTS[key]) for key in keys]

        if scenario == "happy_path":
            return cls(script)

        if scenario == "empty_candidates":
            if "propose" not in keys:
                raise ValueError(f"{pipeline_type} has no concept proposal stage")
            script[keys.index("propose")] = {"candidates": []}
            return cls(script)

        position = len(keys) - 1 if fail_at is None else fail_at
        if not 0 <= position < len(keys):
            raise ValueError(f"fail_at {fail_at} is outside the {len(keys)} stages of {pipeline_type}")

        failures: dict[str, Any] = {
            "transport_error": TransportError("Connection reset by peer"),
            "service_error": ServiceError("Generation service returned status 529: overloaded"),
            "malformed_response": MalformedResponseError(
                "Response is not valid JSON (Expecting value at char 0): 申し訳ありませんが",
                raw_text="申し訳ありませんが、JSONを生成できませんでした。",
            ),
            "missing_keys": {"unexpected": ["this object lacks every required key"]},
        }
        script[position] = failures[scenario]
        # Stages after the failure are never invoked
        return cls(script[: position + 1])

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def invoke(self, prompt: str) -> Any:
        if not prompt or not prompt.strip():
            raise ValueError("prompt must be a non-empty string")
        self.prompts.append(prompt)
        # Yield to the event loop like a real network call would
        await asyncio.sleep(0)

        if len(self.prompts) > len(self.script):
            raise RuntimeError(f"GenerationClientFake script exhausted after {len(self.script)} calls")
        response = self.script[len(self.prompts) - 1]
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)
