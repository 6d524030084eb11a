import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import pandas as pd

from errors import DataError

logger = logging.getLogger(__name__)

SEX_LEVELS = ("male", "female")
PCLASS_LEVELS = (1, 2, 3)


@dataclass(frozen=True)
class PassengerRecord:
    """
    一名乘客。加载后不可变，插补时生成新的副本。
    survived 为 None 表示测试集（没有标签）。
    """
    passenger_id: int
    pclass: int
    sex: str
    age: Optional[float] = None
    name: str = ""
    survived: Optional[int] = None

    def __post_init__(self):
        if self.sex not in SEX_LEVELS:
            raise DataError(f'乘客 {self.passenger_id}: 未知的性别 {self.sex!r}')
        if self.pclass not in PCLASS_LEVELS:
            raise DataError(f'乘客 {self.passenger_id}: 未知的舱位等级 {self.pclass!r}')
        if self.survived is not None and self.survived not in (0, 1):
            raise DataError(f'乘客 {self.passenger_id}: Survived 必须是 0 或 1，得到 {self.survived!r}')
        if self.age is not None and not (math.isfinite(self.age) and self.age >= 0):
            raise DataError(f'乘客 {self.passenger_id}: 年龄必须是非负有限数，得到 {self.age!r}')


Dataset = Tuple[PassengerRecord, ...]


def _optional(value):
    return None if pd.isna(value) else value


def _whole_numbers(data, column, csv_path):
    # 缺失、非数字或带小数的值都不能直接 int()，否则会被静默截断
    values = pd.to_numeric(data[column], errors='coerce')
    bad = values.isna() | (values % 1 != 0)
    if bad.any():
        ids = data.loc[bad, 'PassengerId'].tolist()
        raise DataError(f'CSV {csv_path} 中 {column} 必须是整数，问题乘客: {ids[:10]}')
    return values.astype('int64')


def load_data(csv_path, is_train=True) -> Dataset:
    """
    加载数据。如果是训练集，会检查 Survived 列。
    Name 列可选，仅用于按称谓插补。
    """
    data = pd.read_csv(csv_path)

    # 基础必要列
    required_cols = ['PassengerId', 'Pclass', 'Sex', 'Age']
    if is_train:
        required_cols.append('Survived')

    missing_cols = [col for col in required_cols if col not in data.columns]
    if missing_cols:
        raise DataError(f'CSV {csv_path} 缺少必要列: {", ".join(missing_cols)}')

    if data['Sex'].isnull().any():
        raise DataError(f'CSV {csv_path} 中存在 Sex 缺失值')

    data['Pclass'] = _whole_numbers(data, 'Pclass', csv_path)
    if is_train:
        data['Survived'] = _whole_numbers(data, 'Survived', csv_path)

    records = []
    for row in data.itertuples(index=False):
        age = _optional(row.Age)
        survived = row.Survived if is_train else None
        name = _optional(getattr(row, 'Name', None))
        records.append(PassengerRecord(
            passenger_id=int(row.PassengerId),
            pclass=int(row.Pclass),
            sex=str(row.Sex),
            age=None if age is None else float(age),
            name='' if name is None else str(name),
            survived=None if survived is None else int(survived),
        ))

    logger.info("从 %s 加载了 %d 条记录", csv_path, len(records))
    return tuple(records)
