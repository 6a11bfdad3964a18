"""
订阅套餐目录。
"""

from __future__ import annotations

from typing import List, Optional

from .schemas import SubscriptionPlan

PLANS: List[SubscriptionPlan] = [
    SubscriptionPlan(
        id="starter",
        name="入门版",
        price=29,
        description="快速体验核心 AI 工作流，个人开发者的高性价比之选。",
        features=["10 份精选提示词包", "每月更新自动化模版", "社区交流与答疑"],
        tutorial_url="https://example.com/tutorials/starter",
    ),
    SubscriptionPlan(
        id="pro",
        name="专业版",
        price=79,
        description="协作与运营一体化，助力小团队快速上线 AI 产品。",
        features=["无限提示词迭代", "团队空间与权限管理", "优先邮箱支持", "每周实战直播回放"],
        tutorial_url="https://example.com/tutorials/pro",
        highlight="热门推荐",
    ),
    SubscriptionPlan(
        id="enterprise",
        name="团队版",
        price=199,
        description="面向企业的安全合规方案，覆盖全流程交付与运维。",
        features=["定制化入门培训", "专属解决方案架构师", "使用分析与报表", "SLA 专线支持"],
        tutorial_url="https://example.com/tutorials/enterprise",
    ),
]


def find_plan(plan_id: str) -> Optional[SubscriptionPlan]:
    for plan in PLANS:
        if plan.id == plan_id:
            return plan
    return None
