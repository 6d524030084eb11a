import logging
import warnings

import numpy as np

from features import encode_covariates, outcome_array, split_train_validation
from impute import impute
from model_runner import MODEL_SPECS, ModelRunner, SamplerConfig
from records import load_data
from report import export_submission, parameter_summary, posterior_accuracy

# 忽略一些不必要的警告
warnings.simplefilter(action='ignore', category=FutureWarning)

logger = logging.getLogger(__name__)

TRAIN_CSV = "train.csv"
TEST_CSV = "test.csv"
OUTPUT_FILE = "submission.csv"
RANDOM_SEED = 42
VALIDATION_FRACTION = 0.2
FINAL_MODEL = "age_sex_class"


def setup_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def validate_models(train, validation, config, seed=RANDOM_SEED):
    """
    在训练分区上拟合每个模型变体，返回 {模型名: 验证集后验预测准确率}。
    """
    covariates_train, scaler = encode_covariates(train)
    covariates_val, _ = encode_covariates(validation, scaler=scaler)
    y_train = outcome_array(train)
    y_val = outcome_array(validation)

    results = {}
    for name in MODEL_SPECS:
        draws = ModelRunner(name, config).fit_predict(covariates_train, y_train, covariates_val, seed)
        accuracy = posterior_accuracy(draws, y_val)
        results[name] = float(accuracy.mean())
        low, high = np.quantile(accuracy, [0.03, 0.97])
        logger.info("模型 %s: 验证集准确率 %.3f (94%% 区间 %.3f - %.3f)",
                    name, results[name], low, high)
    return results


def main(train_path=TRAIN_CSV, test_path=TEST_CSV, output_file=OUTPUT_FILE,
         final_model=FINAL_MODEL, config=None, seed=RANDOM_SEED):
    config = config or SamplerConfig()

    # ==========================
    # 1. 训练阶段
    # ==========================
    logger.info("正在加载训练数据...")
    train_records = impute(load_data(train_path, is_train=True))

    train, validation = split_train_validation(train_records, VALIDATION_FRACTION, seed)
    validate_models(train, validation, config, seed)

    # ==========================
    # 2. 测试/预测阶段
    # ==========================
    logger.info("正在加载测试数据 (%s)...", test_path)
    # 使用训练集的统计量填充测试集
    test_records = impute(load_data(test_path, is_train=False), reference=train_records)

    covariates_train, scaler = encode_covariates(train_records)
    covariates_test, _ = encode_covariates(test_records, scaler=scaler)
    draws = ModelRunner(final_model, config).fit_predict(
        covariates_train, outcome_array(train_records), covariates_test, seed
    )
    logger.info("训练集参数摘要:\n%s", parameter_summary(draws))

    # ==========================
    # 3. 生成提交文件
    # ==========================
    submission = export_submission([r.passenger_id for r in test_records], draws, output_file)
    logger.info("预测完成:\n%s", submission.head())
    return submission


if __name__ == "__main__":
    setup_logging()
    main()
