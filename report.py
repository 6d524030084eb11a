"""
结果汇总：后验预测准确率、校准表、参数摘要、轨迹图、提交文件。
"""
import logging

import arviz as az
import matplotlib
import numpy as np
import pandas as pd

from errors import DataError
from model_runner import get_spec

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

logger = logging.getLogger(__name__)


def _check_length(draws, values, what):
    n_test = draws.y_pred.shape[1]
    if len(values) != n_test:
        raise DataError(f'{what} 长度 ({len(values)}) 与预测样本数 ({n_test}) 不一致')


def posterior_accuracy(draws, outcome):
    """
    每一次后验抽样的预测准确率，形状 (S,)。
    其均值就是后验预测准确率，分布宽度反映模型的不确定性。
    """
    y = np.asarray(outcome)
    _check_length(draws, y, "outcome")
    return (draws.y_pred == y[np.newaxis, :]).mean(axis=1)


def calibration_table(draws, outcome, bins=5):
    """按平均预测生存概率分箱，比较预测概率和实际生存率。"""
    y = np.asarray(outcome)
    _check_length(draws, y, "outcome")
    prob = draws.predicted_probability()
    edges = np.linspace(0.0, 1.0, bins + 1)
    df = pd.DataFrame({
        "bin": pd.cut(prob, edges, include_lowest=True),
        "predicted": prob,
        "observed": y,
    })
    table = df.groupby("bin", observed=True).agg(
        n=("observed", "size"),
        predicted=("predicted", "mean"),
        observed=("observed", "mean"),
    )
    return table.reset_index()


def parameter_summary(draws):
    # r_hat: 潜在尺度缩减因子。若 r_hat > 1.05，说明链未收敛
    summary = az.summary(draws.idata, var_names=get_spec(draws.model).parameter_names)
    return summary[['mean', 'sd', 'hdi_3%', 'hdi_97%', 'r_hat']]


def plot_trace(draws, path):
    az.plot_trace(draws.idata, var_names=get_spec(draws.model).parameter_names)
    plt.tight_layout()
    plt.savefig(path)
    plt.close("all")
    logger.info("轨迹图已保存至: %s", path)
    return path


def export_submission(passenger_ids, draws, path):
    """
    写出提交文件。Survived 是预测抽样中位数取整，
    额外保存 Survival_Prob 以便分析。
    """
    passenger_ids = list(passenger_ids)
    _check_length(draws, passenger_ids, "passenger_ids")
    submission = pd.DataFrame({
        'PassengerId': passenger_ids,
        'Survived': draws.predicted_outcome(),
        'Survival_Prob': draws.predicted_probability(),
    })
    submission.to_csv(path, index=False)
    logger.info("结果已保存至: %s", path)
    return submission
