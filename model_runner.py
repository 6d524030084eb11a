"""
贝叶斯逻辑回归 + 后验预测。

P(survived=1) = sigmoid(alpha[sex] + beta * age + 舱位项)

三个固定的模型变体（见 MODEL_SPECS）：
    age_sex        按性别的截距 + 共享的年龄斜率
    age_sex_class  再加上 2 等舱、3 等舱两个哑变量的斜率（1 等舱为基准）
    hierarchical   舱位效应改为部分池化: beta_class = sigma_class * z_class

截距和斜率的先验都是标准正态 Normal(0, 1)。每次调用都新建一个 pm.Model，
不在调用之间保留任何状态；相同输入和相同 seed 得到逐位相同的结果。
"""
import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional, Tuple

import arviz as az
import numpy as np
import pymc as pm

from errors import DataError, EngineError, ModelConvergenceWarning
from features import Covariates
from records import PCLASS_LEVELS, SEX_LEVELS

logger = logging.getLogger(__name__)

CLASS_DUMMIES = ("class_2", "class_3")


@dataclass(frozen=True)
class ModelSpec:
    """模型结构的版本化描述，由 ModelRunner 注入使用。"""
    name: str
    version: str
    uses_class: bool = False
    hierarchical: bool = False

    @property
    def parameter_names(self):
        names = ["alpha", "beta"]
        if self.uses_class:
            names.append("beta_class")
        if self.hierarchical:
            names.append("sigma_class")
        return names


AGE_SEX = ModelSpec("age_sex", "1.0")
AGE_SEX_CLASS = ModelSpec("age_sex_class", "1.0", uses_class=True)
HIERARCHICAL = ModelSpec("hierarchical", "1.0", uses_class=True, hierarchical=True)

MODEL_SPECS = {spec.name: spec for spec in (AGE_SEX, AGE_SEX_CLASS, HIERARCHICAL)}


def get_spec(spec):
    if isinstance(spec, ModelSpec):
        return spec
    try:
        return MODEL_SPECS[spec]
    except KeyError:
        raise ValueError(f'未知的模型: {spec!r}，可选: {", ".join(MODEL_SPECS)}') from None


@dataclass
class SamplerConfig:
    # 采样设置：
    # draws: 正式采样次数
    # tune: 用于调整采样器步长的预热次数 (会被丢弃)
    # chains: 并行链的数量，用于检测收敛性
    draws: int = 2000
    tune: int = 1000
    chains: int = 2
    cores: Optional[int] = None
    target_accept: float = 0.9
    progressbar: bool = True

    # 诊断阈值: r_hat > 1.05 说明链未收敛
    rhat_threshold: float = 1.05
    ess_threshold: float = 400
    max_divergences: int = 0


class PosteriorSample(NamedTuple):
    """一次后验抽样及其对每个留出样本的一次预测 (0/1)。"""
    alpha: Dict[str, float]
    beta: float
    beta_class: Tuple[float, ...]
    y_pred: Tuple[int, ...]


@dataclass(frozen=True, eq=False)
class PosteriorDraws:
    """
    一次拟合的全部后验抽样，按 (chain, draw) 展平，链优先。

    alpha          (S, 2)，列顺序同 SEX_LEVELS
    beta           (S,)
    beta_class     (S, K)，age_sex 模型为 None
    y_pred         (S, N_test)，取值 0/1
    survival_prob  (S, N_test)
    """
    model: str
    alpha: np.ndarray
    beta: np.ndarray
    beta_class: Optional[np.ndarray]
    y_pred: np.ndarray
    survival_prob: np.ndarray
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    idata: Any = field(default=None, repr=False)

    def __len__(self):
        return self.beta.shape[0]

    def __iter__(self):
        for i in range(len(self)):
            yield PosteriorSample(
                alpha={level: float(self.alpha[i, j]) for j, level in enumerate(SEX_LEVELS)},
                beta=float(self.beta[i]),
                beta_class=() if self.beta_class is None else tuple(float(v) for v in self.beta_class[i]),
                y_pred=tuple(int(v) for v in self.y_pred[i]),
            )

    def predicted_outcome(self):
        """每个留出样本预测抽样的中位数并取整（0.5 按四舍六入五成双取 0）。"""
        return np.round(np.median(self.y_pred, axis=0)).astype("int64")

    def predicted_probability(self):
        return self.survival_prob.mean(axis=0)


def class_dummies(pclass):
    pclass = np.asarray(pclass)
    return np.column_stack([(pclass == level).astype(float) for level in PCLASS_LEVELS[1:]])


def _check_covariates(covariates, spec, partition):
    age = np.asarray(covariates.age, dtype=float)
    sex = np.asarray(covariates.sex)
    if age.ndim != 1 or sex.ndim != 1:
        raise DataError(f'{partition}: 协变量必须是一维数组')
    n = len(age)
    if n == 0:
        raise DataError(f'{partition}: 没有任何记录')
    if len(sex) != n:
        raise DataError(f'{partition}: age ({n}) 与 sex ({len(sex)}) 长度不一致')
    if not np.all(np.isfinite(age)):
        raise DataError(f'{partition}: age 中存在缺失或非有限值')
    if not np.isin(sex, (0, 1)).all():
        raise DataError(f'{partition}: sex 下标必须是 0 或 1')

    pclass = None
    if covariates.pclass is not None:
        pclass = np.asarray(covariates.pclass)
        if pclass.ndim != 1 or len(pclass) != n:
            raise DataError(f'{partition}: pclass 与 age ({n}) 长度不一致')
        if not np.isin(pclass, PCLASS_LEVELS).all():
            raise DataError(f'{partition}: pclass 必须取值 1、2、3')
        pclass = pclass.astype("int64")
    elif spec.uses_class:
        raise DataError(f'{partition}: 模型 {spec.name} 需要 pclass 协变量')

    return Covariates(age=age, sex=sex.astype("int64"), pclass=pclass)


def _check_outcome(outcome, n_rows):
    y = np.asarray(outcome)
    if y.ndim != 1 or len(y) != n_rows:
        raise DataError(f'outcome 长度 ({len(y)}) 与训练协变量 ({n_rows}) 不一致')
    if not np.isin(y, (0, 1)).all():
        raise DataError('outcome 只能包含 0 和 1')
    return y.astype("int64")


def _data_values(spec, covariates):
    values = {"X_age": covariates.age, "X_sex": covariates.sex}
    if spec.hierarchical:
        values["X_class"] = covariates.pclass - 1
    elif spec.uses_class:
        values["X_class"] = class_dummies(covariates.pclass)
    return values


def build_model(spec, covariates, outcome):
    """按 spec 构建 PyMC 模型，训练数据放在 pm.Data 容器中以便之后替换为测试集。"""
    coords = {"sex": SEX_LEVELS}
    if spec.hierarchical:
        coords["pclass"] = PCLASS_LEVELS
    elif spec.uses_class:
        coords["pclass"] = CLASS_DUMMIES

    data = _data_values(spec, covariates)
    with pm.Model(coords=coords) as model:
        # --- A. 先验 ---
        alpha = pm.Normal("alpha", mu=0.0, sigma=1.0, dims="sex")
        beta = pm.Normal("beta", mu=0.0, sigma=1.0)

        # --- B. 输入容器 ---
        X_age = pm.Data("X_age", data["X_age"])
        X_sex = pm.Data("X_sex", data["X_sex"])
        y_data = pm.Data("y_data", outcome)

        # --- C. 线性组合 & 似然 ---
        mu = alpha[X_sex] + beta * X_age
        if spec.hierarchical:
            X_class = pm.Data("X_class", data["X_class"])
            sigma_class = pm.HalfNormal("sigma_class", sigma=1.0)
            z_class = pm.Normal("z_class", mu=0.0, sigma=1.0, dims="pclass")
            beta_class = pm.Deterministic("beta_class", sigma_class * z_class, dims="pclass")
            mu = mu + beta_class[X_class]
        elif spec.uses_class:
            X_class = pm.Data("X_class", data["X_class"])
            beta_class = pm.Normal("beta_class", mu=0.0, sigma=1.0, dims="pclass")
            mu = mu + pm.math.dot(X_class, beta_class)

        pm.Deterministic("survival_prob", pm.math.sigmoid(mu))
        # shape 跟随输入容器，替换为测试集后预测的长度随之改变
        pm.Bernoulli("y_obs", logit_p=mu, observed=y_data, shape=X_age.shape[0])

    return model


def check_convergence(idata, spec, config):
    """
    计算 R-hat、bulk ESS 和发散次数。任一项不达标时发出 ModelConvergenceWarning。
    返回诊断字典，all_ok 表示全部通过。
    """
    var_names = spec.parameter_names
    rhat = az.rhat(idata, var_names=var_names)
    ess = az.ess(idata, var_names=var_names)
    # 任一参数的 R-hat 无法计算时结果为 NaN
    rhat_max = float(np.max([float(rhat[name].max()) for name in var_names]))
    ess_min = min(float(ess[name].min()) for name in var_names)
    divergences = int(idata.sample_stats["diverging"].sum())

    problems = []
    if not np.isfinite(rhat_max):
        problems.append('R-hat 无法计算 (链数不足?)')
    elif rhat_max > config.rhat_threshold:
        problems.append(f'R-hat 最大值 {rhat_max:.3f} > {config.rhat_threshold}')
    if np.isfinite(ess_min) and ess_min < config.ess_threshold:
        problems.append(f'ESS 最小值 {ess_min:.0f} < {config.ess_threshold}')
    if divergences > config.max_divergences:
        problems.append(f'发散 {divergences} 次')

    diagnostics = {
        "rhat_max": rhat_max,
        "ess_min": ess_min,
        "divergences": divergences,
        "all_ok": not problems,
    }
    if problems:
        message = f'模型 {spec.name} 收敛诊断未通过: ' + '; '.join(problems)
        logger.warning(message)
        warnings.warn(message, ModelConvergenceWarning, stacklevel=3)
    return diagnostics


def _flatten(values):
    # (chain, draw, ...) -> (chain * draw, ...)
    values = np.asarray(values)
    return values.reshape((-1,) + values.shape[2:])


class ModelRunner:
    """
    拟合并预测。只持有不可变的 spec 和采样配置，调用之间没有共享状态。
    """

    def __init__(self, spec=AGE_SEX, config=None):
        self.spec = get_spec(spec)
        self.config = config or SamplerConfig()

    def fit_predict(self, covariates_train, outcome_train, covariates_test, seed):
        spec, config = self.spec, self.config
        train = _check_covariates(covariates_train, spec, "训练集")
        y_train = _check_outcome(outcome_train, len(train.age))
        test = _check_covariates(covariates_test, spec, "测试集")

        model = build_model(spec, train, y_train)
        try:
            with model:
                logger.info("开始 MCMC 采样: 模型 %s v%s, 训练 %d 条, seed=%s",
                            spec.name, spec.version, len(train.age), seed)
                idata = pm.sample(
                    draws=config.draws,
                    tune=config.tune,
                    chains=config.chains,
                    cores=config.cores,
                    target_accept=config.target_accept,
                    random_seed=seed,
                    progressbar=config.progressbar,
                )

                # 更新数据容器的内容为测试集数据，再进行后验预测
                test_data = _data_values(spec, test)
                test_data["y_data"] = np.zeros(len(test.age), dtype="int64")
                pm.set_data(test_data)
                logger.info("正在进行后验预测: 测试 %d 条", len(test.age))
                post_pred = pm.sample_posterior_predictive(
                    idata,
                    var_names=["y_obs", "survival_prob"],
                    random_seed=seed,
                    progressbar=config.progressbar,
                )
        except Exception as exc:
            raise EngineError(f'模型 {spec.name} 采样失败: {exc}') from exc

        diagnostics = check_convergence(idata, spec, config)
        idata.extend(post_pred)

        posterior = idata.posterior
        predictive = post_pred.posterior_predictive
        return PosteriorDraws(
            model=spec.name,
            alpha=_flatten(posterior["alpha"].values),
            beta=_flatten(posterior["beta"].values),
            beta_class=_flatten(posterior["beta_class"].values) if spec.uses_class else None,
            y_pred=_flatten(predictive["y_obs"].values).astype("int64"),
            survival_prob=_flatten(predictive["survival_prob"].values),
            diagnostics=diagnostics,
            idata=idata,
        )


def fit_predict(covariates_train, outcome_train, covariates_test, seed, spec=AGE_SEX, config=None):
    return ModelRunner(spec, config).fit_predict(covariates_train, outcome_train, covariates_test, seed)
