"""
提交后钩子：状态变更落库之后才执行的副作用（通知、审计、缓存失效、菜单重新评估）
每个钩子各自捕获异常：记日志、计数、丢弃，主流程的结果不受影响
"""
import logging
from functools import partial

from django.db import transaction

from .metrics import SIDE_EFFECT_FAILURE

logger = logging.getLogger(__name__)


def run_hook(name, func, *args, **kwargs):
    try:
        func(*args, **kwargs)
    except Exception:
        SIDE_EFFECT_FAILURE.labels(hook=name).inc()
        logger.exception("post-commit hook failed: %s", name)


def after_commit(name, func, *args, **kwargs):
    """在当前事务提交后执行；没有事务时立即执行"""
    transaction.on_commit(partial(run_hook, name, func, *args, **kwargs))


class PostCommitHooks:
    """
    先收集再统一注册，保证按添加顺序执行
    hooks = PostCommitHooks(); hooks.add("audit", record_audit, ...); hooks.register()
    """

    def __init__(self):
        self._hooks = []

    def add(self, name, func, *args, **kwargs):
        self._hooks.append((name, func, args, kwargs))
        return self

    def register(self):
        for name, func, args, kwargs in self._hooks:
            after_commit(name, func, *args, **kwargs)
        self._hooks = []
