"""
把记录转换为模型输入：训练/验证划分、协变量编码、年龄标准化。
"""
import logging
from typing import NamedTuple, Optional

import numpy as np
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from errors import DataError
from records import SEX_LEVELS

logger = logging.getLogger(__name__)


class Covariates(NamedTuple):
    """
    按记录对齐的协变量。
    sex 是 SEX_LEVELS 的下标 (male=0, female=1)；pclass 取值 1..3，不需要舱位的模型可为 None。
    """
    age: np.ndarray
    sex: np.ndarray
    pclass: Optional[np.ndarray] = None


class AgeScaler:
    """
    年龄标准化。只在训练集上 fit，验证集和测试集复用同一个 scaler（绝对不能重新 fit）。
    """

    def __init__(self):
        self._scaler = StandardScaler()
        self.fitted = False

    def fit(self, ages):
        self._scaler.fit(np.asarray(ages, dtype=float).reshape(-1, 1))
        self.fitted = True
        return self

    def transform(self, ages):
        if not self.fitted:
            raise DataError('AgeScaler 尚未 fit，请先在训练集上调用 fit')
        return self._scaler.transform(np.asarray(ages, dtype=float).reshape(-1, 1)).ravel()

    @property
    def mean(self):
        return float(self._scaler.mean_[0])

    @property
    def scale(self):
        return float(self._scaler.scale_[0])


def split_train_validation(records, validation_fraction=0.2, seed=42):
    """无放回随机划分，固定 seed 保证可复现。"""
    records = tuple(records)
    if len(records) < 2:
        raise DataError('至少需要两条记录才能划分训练集和验证集')
    train, validation = train_test_split(
        list(records), test_size=validation_fraction, random_state=seed, shuffle=True
    )
    logger.info("划分完成: 训练 %d 条, 验证 %d 条", len(train), len(validation))
    return tuple(train), tuple(validation)


def encode_covariates(records, scaler=None):
    """
    编码协变量。scaler 为 None 时视为训练阶段：新建 AgeScaler 并在这些记录上 fit。
    返回 (Covariates, scaler)，测试阶段请传入训练阶段返回的 scaler。
    """
    records = tuple(records)
    if not records:
        raise DataError('没有可编码的记录')
    missing = [r.passenger_id for r in records if r.age is None]
    if missing:
        raise DataError(f'以下乘客缺少年龄，请先调用 impute: {missing[:10]}')

    ages = np.array([r.age for r in records], dtype=float)
    if scaler is None:
        scaler = AgeScaler().fit(ages)

    covariates = Covariates(
        age=scaler.transform(ages),
        sex=np.array([SEX_LEVELS.index(r.sex) for r in records], dtype="int64"),
        pclass=np.array([r.pclass for r in records], dtype="int64"),
    )
    return covariates, scaler


def outcome_array(records):
    missing = [r.passenger_id for r in records if r.survived is None]
    if missing:
        raise DataError(f'以下乘客缺少 Survived 标签: {missing[:10]}')
    return np.array([r.survived for r in records], dtype="int64")
