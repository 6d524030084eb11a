"""
年龄插补。

规则是确定性的（没有随机性），同一输入重复调用得到同一输出。
默认策略 "class_sex"：用同性别、同舱位乘客的年龄统计量填充；该组没有已知年龄时
依次回退到同性别、全体乘客、default_age，最后抛出 ImputationExhaustedError。
策略 "title" 先按姓名中的称谓分组，再同样回退到性别、全体、默认值。
"""
import logging
import re
from collections.abc import Mapping
from dataclasses import replace

import numpy as np

from errors import ImputationExhaustedError

logger = logging.getLogger(__name__)

POLICIES = ("class_sex", "title")
STATISTICS = {"mean": np.mean, "median": np.median}

_TITLE_PATTERN = re.compile(r",\s*(?:the\s+)?([A-Za-z]+)\.")
_CANONICAL_TITLES = {
    'MR': 'Mr', 'MRS': 'Mrs', 'MISS': 'Miss', 'MASTER': 'Master',
    'MS': 'Miss', 'MLLE': 'Miss', 'MME': 'Mrs',
    'DR': 'Officer', 'REV': 'Officer', 'COL': 'Officer', 'MAJOR': 'Officer', 'CAPT': 'Officer',
    'SIR': 'Royalty', 'LADY': 'Royalty', 'COUNTESS': 'Royalty', 'DON': 'Royalty',
    'DONA': 'Royalty', 'JONKHEER': 'Royalty',
}


def extract_title(name):
    """"Braund, Mr. Owen Harris" -> "Mr"。解析不到称谓时返回 "Unknown"。"""
    match = _TITLE_PATTERN.search(name or "")
    if match is None:
        return "Unknown"
    return _CANONICAL_TITLES.get(match.group(1).upper(), "Other")


def _group_keys(record, policy):
    # 从细到粗的分组键，最后一个是全体
    if policy == "title":
        first = ("title", extract_title(record.name))
    else:
        first = ("class_sex", record.sex, record.pclass)
    return (first, ("sex", record.sex), ("all",))


def _group_statistics(source, policy, statistic):
    ages = {}
    for record in source:
        if record.age is None:
            continue
        for key in _group_keys(record, policy):
            ages.setdefault(key, []).append(record.age)
    summarize = STATISTICS[statistic]
    return {key: float(summarize(values)) for key, values in ages.items()}


def _estimate(record, stats, policy, default_age):
    for key in _group_keys(record, policy):
        if key in stats:
            return stats[key]
    if default_age is not None:
        return float(default_age)
    raise ImputationExhaustedError(
        f'乘客 {record.passenger_id}: 任何分组层级都没有已知年龄，且未提供 default_age'
    )


def impute(records, policy="class_sex", statistic="mean", default_age=None, reference=None):
    """
    返回年龄全部填充后的记录集合，不修改输入。

    records 可以是记录序列（返回 tuple）或 {乘客编号: 记录} 映射（返回同样顺序的 dict）。
    reference: 统计量的来源记录，例如用训练集的统计量填充测试集；默认为 records 本身。
    已有年龄的记录原样返回（同一个对象）。
    """
    if policy not in POLICIES:
        raise ValueError(f'未知的插补策略: {policy!r}')
    if statistic not in STATISTICS:
        raise ValueError(f'未知的统计量: {statistic!r}')

    is_mapping = isinstance(records, Mapping)
    items = list(records.values()) if is_mapping else list(records)
    source = items if reference is None else list(
        reference.values() if isinstance(reference, Mapping) else reference
    )

    stats = _group_statistics(source, policy, statistic)
    filled = []
    n_missing = 0
    for record in items:
        if record.age is None:
            n_missing += 1
            record = replace(record, age=_estimate(record, stats, policy, default_age))
        filled.append(record)

    if n_missing:
        logger.info("按 %s 策略 (%s) 插补了 %d 个缺失年龄", policy, statistic, n_missing)

    if is_mapping:
        return dict(zip(records.keys(), filled))
    return tuple(filled)
