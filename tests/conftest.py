import numpy as np
import pytest

from features import Covariates
from model_runner import SamplerConfig
from tests.factories import make_record


@pytest.fixture
def fast_config():
    """采样次数很少的配置，只用于测试。"""
    return SamplerConfig(draws=100, tune=100, chains=2, cores=1, progressbar=False,
                         rhat_threshold=1.5, ess_threshold=0, max_divergences=1000)


@pytest.fixture
def mixed_records():
    return (
        make_record(1, "female", 1, 30.0, "Cumings, Mrs. John Bradley", 1),
        make_record(2, "female", 1, None, "Futrelle, Mrs. Jacques Heath", 1),
        make_record(3, "female", 1, 40.0, "Bonnell, Miss. Elizabeth", 1),
        make_record(4, "male", 3, 22.0, "Braund, Mr. Owen Harris", 0),
        make_record(5, "male", 3, None, "Moran, Mr. James", 0),
        make_record(6, "male", 2, None, "Palsson, Master. Gosta Leonard", 0),
        make_record(7, "female", 3, None, "Johnson, Mrs. Oscar W", 1),
        make_record(8, "male", 1, 54.0, "McCarthy, Mr. Timothy J", 0),
    )


@pytest.fixture
def scenario_covariates():
    # 训练: 22 岁 1 等舱女性 (存活), 35 岁 3 等舱男性 (遇难); 测试: 28 岁 1 等舱女性
    train = Covariates(age=np.array([22.0, 35.0]), sex=np.array([1, 0]), pclass=np.array([1, 3]))
    outcome = np.array([1, 0])
    test = Covariates(age=np.array([28.0]), sex=np.array([1]), pclass=np.array([1]))
    return train, outcome, test
