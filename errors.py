"""
异常与警告类型。

所有错误都直接抛给调用方；唯一的静默替代是 impute.py 中文档化的年龄回退链。
"""


class TitanicError(Exception):
    """本项目所有异常的基类。"""


class DataError(TitanicError, ValueError):
    """输入记录格式错误或数组长度不一致。"""


class ImputationExhaustedError(TitanicError):
    """所有分组层级都没有可用的年龄统计量，且没有提供固定默认值。"""


class EngineError(TitanicError, RuntimeError):
    """采样引擎本身未能产出结果。"""


class ModelConvergenceWarning(UserWarning):
    """采样诊断（R-hat、ESS、发散）显示混合不佳，结果仍可用但需谨慎对待。"""
