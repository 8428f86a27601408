"""Keyword-weighted relevance scoring for candidate articles."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Pattern, Sequence

from .models import DECISION_EXCLUDED, DECISION_PASS, DECISION_REJECT, Article, ScoreResult

STRICT_THRESHOLD = 0.25
LENIENT_THRESHOLD = 0.05
LENIENT_FLOOR = 0.1
EVENT_SCORE = 0.8
LOG_SCORE_MIN = 0.2

CATEGORY_WEIGHTS = {
    "project": 0.40,
    "frontend": 0.30,
    "ai": 0.20,
    "context": 0.15,
    "tools": 0.10,
}

CODE_MARKERS = ("```", "<code>", "function", "const", "import", "export")


def _compile(patterns: Sequence[str]) -> tuple[Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


@dataclass(frozen=True)
class KeywordTables:
    project_primary: tuple[str, ...]
    project_secondary: tuple[str, ...]
    frontend_high: tuple[str, ...]
    frontend_medium: tuple[str, ...]
    frontend_low: tuple[str, ...]
    ai_high: tuple[str, ...]
    ai_medium: tuple[str, ...]
    context_indicators: tuple[str, ...]
    bundlers_preferred: tuple[str, ...]
    bundlers_common: tuple[str, ...]
    package_managers_preferred: tuple[str, ...]
    package_managers_common: tuple[str, ...]
    discouraged_frameworks: tuple[str, ...]
    discouraged_state: tuple[str, ...]
    discouraged_styling: tuple[str, ...]
    discouraged_bundlers: tuple[str, ...]
    exclusion_patterns: tuple[Pattern[str], ...]
    backend_only_patterns: tuple[Pattern[str], ...]
    event_keywords: tuple[str, ...]
    dev_keywords: tuple[str, ...]
    point_values: dict[str, float] = field(
        default_factory=lambda: {
            "project_primary": 2.0,
            "project_secondary": 1.5,
            "frontend_high": 1.0,
            "frontend_medium": 0.7,
            "frontend_low": 0.4,
            "ai_high": 1.0,
            "ai_medium": 0.6,
            "context_indicator": 0.15,
            "context_code": 0.5,
            "bundler_preferred": 0.8,
            "package_manager_preferred": 0.6,
            "bundler_common": 0.4,
            "package_manager_common": 0.3,
            "penalty_framework": -0.3,
            "penalty_state": -0.2,
            "penalty_styling": -0.2,
            "penalty_bundler": -0.1,
        }
    )


DEFAULT_TABLES = KeywordTables(
    project_primary=(
        "typescript", "react", "tailwind css", "tailwindcss", "vite",
        "radix ui", "storybook", "pnpm", "zustand", "tanstack",
        "react query", "tanstack query", "tanstack router", "tanstack table",
        "apache echarts", "eslint", "stylelint", "prettier", "playwright",
        "feature sliced design", "fsd", "headless ui",
    ),
    project_secondary=(
        "react ecosystem", "typescript config", "vite config", "tailwind config",
        "headless components", "radix primitives", "component library",
        "state management", "data fetching", "react hooks", "custom hooks",
        "react patterns", "typescript patterns", "frontend architecture",
        "cursor ai", "claude code", "github copilot", "ai assistant",
        "ai development", "ai coding", "coding assistant", "ai tools",
        "claude api integration", "openai integration", "llm integration",
    ),
    frontend_high=(
        "javascript", "typescript", "react", "html5", "css3",
        "frontend development", "web development", "single page application", "spa",
        "component architecture", "react components", "hooks", "jsx", "tsx",
        "dom manipulation", "web api", "browser api", "fetch api",
        "es6", "es2015", "es2020", "modern javascript",
        "web standards", "web components", "custom elements",
    ),
    frontend_medium=(
        "frontend", "front-end", "web app", "web application",
        "responsive design", "mobile first", "css grid", "flexbox",
        "web performance", "core web vitals", "lighthouse",
        "accessibility", "a11y", "semantic html", "aria",
        "progressive enhancement", "graceful degradation",
        "cross browser", "polyfill", "transpilation",
    ),
    frontend_low=(
        "ui", "user interface", "user experience", "design system",
        "design tokens", "css preprocessor", "css modules",
        "web design", "interaction design", "animation",
        "transition", "transform", "svg", "canvas",
    ),
    ai_high=(
        "ai frontend", "frontend ai", "machine learning frontend",
        "ai ui", "ai user interface", "chatbot ui", "conversational ui",
        "ai dashboard", "ml dashboard", "data visualization",
        "ai components", "smart components", "intelligent ui",
        "ai/ml frontend", "frontend for ai", "ai web app",
        "openai", "claude", "anthropic", "chatgpt", "gpt-4", "gpt-3",
        "claude api", "openai api", "anthropic api",
        "cursor ai", "cursor editor", "claude code", "copilot",
        "github copilot", "ai assistant", "coding assistant",
        "ai development", "ai programming", "llm integration",
    ),
    ai_medium=(
        "tensorflow.js", "ml5.js", "webgl", "webgpu", "wasm",
        "ai integration", "api integration", "real-time ai",
        "streaming ai", "ai chat", "ai visualization",
        "neural network visualization", "model visualization",
        "ai coding", "ai powered", "machine learning", "deep learning",
        "neural network", "transformer", "llm", "large language model",
        "generative ai", "artificial intelligence", "ai model",
        "ai tools", "ai workflow", "ai development tools",
    ),
    context_indicators=(
        "development", "coding", "programming", "implementation",
        "refactoring", "optimization", "debugging", "testing",
        "개발", "구현", "최적화", "리팩토링", "테스트",
        "tutorial", "guide", "how to", "best practices", "tips",
        "튜토리얼", "가이드", "방법", "팁", "예제",
        "architecture", "pattern", "design", "performance",
        "scalability", "maintainability", "reliability",
        "아키텍처", "패턴", "설계", "성능", "확장성",
        "conference", "meetup", "workshop", "seminar", "session",
        "summit", "forum", "community", "event", "presentation",
        "컨퍼런스", "밋업", "워크샵", "세미나", "세션",
        "서밋", "포럼", "커뮤니티", "이벤트", "발표",
        "deview", "if kakao", "ndc", "pycon", "jsconf",
        "spring camp", "awskrug", "카카오", "네이버", "라인",
        "우아콘", "인프콘", "devfest", "모임", "개발자",
    ),
    bundlers_preferred=("vite", "esbuild", "swc"),
    bundlers_common=("webpack", "rollup", "parcel", "turbopack"),
    package_managers_preferred=("pnpm",),
    package_managers_common=("npm", "yarn"),
    discouraged_frameworks=("vue.js", "vue", "angular", "svelte"),
    discouraged_state=("recoil", "redux", "mobx"),
    discouraged_styling=("styled-components", "emotion", "css-in-js"),
    discouraged_bundlers=("webpack",),
    exclusion_patterns=_compile(
        (
            # mobile
            r"모바일.*앱", r"핸드폰.*기능", r"스마트폰.*설정", r"안드로이드.*개발",
            r"ios.*개발", r"아이폰.*기능", r"갤럭시.*기능", r"mobile.*app",
            r"android.*development", r"ios.*development", r"swift.*development",
            r"kotlin.*android", r"react.*native", r"flutter.*mobile",
            # games
            r"게임.*개발", r"게임.*엔진", r"unity.*개발", r"unreal.*engine",
            r"게임.*디자인", r"game.*development", r"game.*engine",
            r"console.*game", r"mobile.*game",
            # hardware
            r"하드웨어.*설계", r"칩셋.*성능", r"배터리.*기술", r"프로세서.*성능",
            r"그래픽.*카드", r"메모리.*용량", r"storage.*technology",
            r"embedded.*system", r"iot.*hardware", r"sensor.*technology",
            # business news
            r"기업.*소식", r"회사.*뉴스", r"투자.*소식", r"주가.*변동",
            r"경영.*전략", r"마케팅.*캠페인", r"비즈니스.*모델",
            r"업계.*동향", r"시장.*분석", r"경쟁사.*분석",
            r"제품.*출시", r"제품.*리뷰", r"브랜드.*전략",
            # product reviews
            r"카메라.*성능", r"디스플레이.*품질", r"음향.*품질",
            r"사용.*후기", r"구매.*가이드", r"가격.*비교",
        )
    ),
    backend_only_patterns=_compile(
        (
            r"backend.*only", r"서버.*only", r"database.*only",
            r"infrastructure.*only", r"devops.*only",
            r"순수.*백엔드", r"백엔드.*전용",
        )
    ),
    event_keywords=(
        "컨퍼런스", "밋업", "conference", "meetup", "이벤트", "event", "세미나",
        "워크샵", "deview", "if(kakao)", "if kakao", "ndc", "카카오", "네이버", "개발자",
    ),
    dev_keywords=(
        "개발", "코드", "프로그래밍", "시스템", "아키텍처", "서비스", "플랫폼", "기술", "도구",
        "dev", "tech", "code", "system", "architecture", "microservice", "api", "database",
        "docker", "kubernetes", "kafka", "graphql", "rest", "ci/cd", "devops", "cloud",
        "service", "application", "framework", "library", "tool", "development",
        "데이터베이스", "article", "커뮤니티", "community",
    ),
)


class RelevanceScorer:
    def __init__(
        self,
        lenient: bool = False,
        tables: KeywordTables = DEFAULT_TABLES,
        strict_threshold: float = STRICT_THRESHOLD,
        lenient_threshold: float = LENIENT_THRESHOLD,
        lenient_floor: float = LENIENT_FLOOR,
        logger: Optional[logging.Logger] = None,
    ):
        self.lenient = lenient
        self.tables = tables
        self.strict_threshold = strict_threshold
        self.lenient_threshold = lenient_threshold
        self.lenient_floor = lenient_floor
        self.logger = logger or logging.getLogger(__name__)

    @property
    def threshold(self) -> float:
        return self.lenient_threshold if self.lenient else self.strict_threshold

    def score(self, article: Article) -> ScoreResult:
        title = getattr(article, "title", None) or ""
        body = getattr(article, "raw_text", None) or ""
        return self.score_text(title, body)

    def is_admitted(self, article: Article) -> bool:
        return self.score(article).admitted

    def score_text(self, title: Optional[str], body: Optional[str]) -> ScoreResult:
        title = (title or "").lower()
        body = (body or "").lower()
        full_text = f"{title} {body}"

        if self._matches_any(self.tables.exclusion_patterns, full_text):
            return self._decide(title, 0.0, DECISION_EXCLUDED, {}, "exclusion pattern matched")

        if self.lenient:
            # backend-only must be checked before the event gate and the floor
            if self._matches_any(self.tables.backend_only_patterns, full_text):
                return self._decide(title, 0.0, DECISION_EXCLUDED, {}, "backend-only content")
            if self._contains_any(self.tables.event_keywords, full_text):
                return self._decide(
                    title,
                    EVENT_SCORE,
                    DECISION_PASS,
                    {"context": EVENT_SCORE},
                    "event content auto-approved",
                )

        breakdown = {
            "project": self._project_score(title, body),
            "frontend": self._frontend_score(title, body),
            "ai": self._ai_score(title, body),
            "context": self._context_score(body, full_text),
            "tools": self._tools_score(full_text),
            "penalty": self._penalty(full_text),
        }
        weighted = sum(breakdown[name] * weight for name, weight in CATEGORY_WEIGHTS.items())
        total = max(0.0, weighted + breakdown["penalty"])

        reason = None
        if self.lenient and total < self.lenient_floor and self._contains_any(self.tables.dev_keywords, full_text):
            total = self.lenient_floor
            reason = "lenient floor applied"

        decision = DECISION_PASS if total >= self.threshold else DECISION_REJECT
        return self._decide(title, total, decision, breakdown, reason)

    def _decide(
        self,
        title: str,
        score: float,
        decision: str,
        breakdown: dict[str, float],
        reason: Optional[str],
    ) -> ScoreResult:
        result = ScoreResult(
            score=score,
            admitted=decision == DECISION_PASS,
            decision=decision,
            breakdown=breakdown,
            reason=reason,
        )
        short_title = title[:80] + ("..." if len(title) > 80 else "")
        if decision == DECISION_EXCLUDED or score >= LOG_SCORE_MIN or reason:
            self.logger.info(
                "relevance: decision=%s score=%.3f lenient=%s reason=%s breakdown=%s title=%s",
                decision,
                score,
                self.lenient,
                reason,
                {key: round(value, 2) for key, value in breakdown.items()},
                short_title,
            )
        else:
            self.logger.debug("relevance: decision=%s score=%.3f title=%s", decision, score, short_title)
        return result

    @staticmethod
    def _matches_any(patterns: Sequence[Pattern[str]], text: str) -> bool:
        return any(pattern.search(text) for pattern in patterns)

    @staticmethod
    def _contains_any(keywords: Sequence[str], text: str) -> bool:
        return any(keyword in text for keyword in keywords)

    @staticmethod
    def _weighted_hits(
        keywords: Sequence[str],
        points: float,
        title: str,
        body: str,
        title_weight: float,
    ) -> float:
        score = 0.0
        for keyword in keywords:
            if keyword in title:
                score += points * title_weight
            elif keyword in body:
                score += points
        return score

    def _project_score(self, title: str, body: str) -> float:
        points = self.tables.point_values
        score = self._weighted_hits(self.tables.project_primary, points["project_primary"], title, body, 3)
        score += self._weighted_hits(self.tables.project_secondary, points["project_secondary"], title, body, 3)
        return min(score / 4, 1.0)

    def _frontend_score(self, title: str, body: str) -> float:
        points = self.tables.point_values
        score = self._weighted_hits(self.tables.frontend_high, points["frontend_high"], title, body, 2)
        score += self._weighted_hits(self.tables.frontend_medium, points["frontend_medium"], title, body, 2)
        score += self._weighted_hits(self.tables.frontend_low, points["frontend_low"], title, body, 2)
        return min(score / 3, 1.0)

    def _ai_score(self, title: str, body: str) -> float:
        points = self.tables.point_values
        score = self._weighted_hits(self.tables.ai_high, points["ai_high"], title, body, 2)
        score += self._weighted_hits(self.tables.ai_medium, points["ai_medium"], title, body, 2)
        return min(score / 2, 1.0)

    def _context_score(self, body: str, full_text: str) -> float:
        points = self.tables.point_values
        hits = sum(1 for indicator in self.tables.context_indicators if indicator in full_text)
        score = hits * points["context_indicator"]
        if any(marker in body for marker in CODE_MARKERS):
            score += points["context_code"]
        return min(score, 1.0)

    def _tools_score(self, full_text: str) -> float:
        points = self.tables.point_values
        groups = (
            (self.tables.bundlers_preferred, points["bundler_preferred"]),
            (self.tables.package_managers_preferred, points["package_manager_preferred"]),
            (self.tables.bundlers_common, points["bundler_common"]),
            (self.tables.package_managers_common, points["package_manager_common"]),
        )
        score = sum(value for names, value in groups for name in names if name in full_text)
        return min(score, 1.0)

    def _penalty(self, full_text: str) -> float:
        points = self.tables.point_values
        groups = (
            (self.tables.discouraged_frameworks, points["penalty_framework"]),
            (self.tables.discouraged_state, points["penalty_state"]),
            (self.tables.discouraged_styling, points["penalty_styling"]),
            (self.tables.discouraged_bundlers, points["penalty_bundler"]),
        )
        return sum(value for names, value in groups for name in names if name in full_text)
