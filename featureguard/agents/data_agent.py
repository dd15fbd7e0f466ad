# featureguard/agents/data_agent.py
import pandas as pd
import numpy as np
from typing import List, Optional
import logging
from pathlib import Path

from featureguard.config import DataValidationConfig, get_config

logger = logging.getLogger(__name__)


class DataIngestionAgent:
    """Agent responsible for data ingestion and initial validation"""

    def __init__(self, config: Optional[DataValidationConfig] = None):
        self.config = config or get_config().data_validation
        self.supported_formats = list(self.config.SUPPORTED_FILE_FORMATS)
        self.max_file_size_mb = self.config.MAX_FILE_SIZE_MB

    async def process(self, state: dict) -> dict:
        """Main processing function for data ingestion"""
        logger.info(f"Starting data ingestion for: {state['data_path']}")

        try:
            data = self._load_data(state['data_path'])
            data_info = self._extract_data_info(data)

            state.update({
                'raw_data': data,
                'data_info': data_info,
                'current_step': 'data_ingestion',
                'next_action': 'data_validation'
            })

            state['execution_log'].append(
                f"Data loaded successfully: {data.shape[0]} rows, {data.shape[1]} columns"
            )

            return state

        except Exception as e:
            logger.error(f"Data ingestion failed: {str(e)}")
            state['errors'].append(f"Data ingestion error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def _load_data(self, data_path: str) -> pd.DataFrame:
        """Load data from the supported file formats"""
        path = Path(data_path)

        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {data_path}")

        file_size_mb = path.stat().st_size / (1024 * 1024)
        if file_size_mb > self.max_file_size_mb:
            raise ValueError(f"File too large: {file_size_mb:.1f}MB > {self.max_file_size_mb}MB")

        extension = path.suffix.lower()
        if extension not in self.supported_formats:
            raise ValueError(f"Unsupported file format: {extension}")

        if extension == '.csv':
            # Try different encodings and separators
            for encoding in ['utf-8', 'latin-1']:
                for sep in [',', ';', '\t']:
                    try:
                        data = pd.read_csv(data_path, encoding=encoding, sep=sep)
                    except (UnicodeDecodeError, pd.errors.ParserError):
                        continue
                    if data.shape[1] > 1:
                        return data
            raise ValueError("Could not parse CSV file with any encoding/separator combination")

        elif extension == '.json':
            return pd.read_json(data_path)

        elif extension == '.parquet':
            return pd.read_parquet(data_path)

        raise ValueError(f"Unsupported file format: {extension}")

    def _extract_data_info(self, data: pd.DataFrame) -> dict:
        """Extract basic information about the dataset"""
        return {
            'shape': data.shape,
            'columns': list(data.columns),
            'dtypes': {col: str(dtype) for col, dtype in data.dtypes.items()},
            'missing_values': data.isnull().sum().to_dict(),
            'memory_usage_mb': data.memory_usage(deep=True).sum() / (1024 * 1024),
            'numeric_columns': list(data.select_dtypes(include=[np.number]).columns),
            'categorical_columns': list(data.select_dtypes(include=['object', 'category']).columns),
        }

    async def validate(self, state: dict) -> dict:
        """Validate the loaded data before feature engineering"""
        logger.info("Starting data validation")

        try:
            data = state['raw_data']
            target_column = state['target_column']

            validation_results = []

            # 1. Check if target column exists
            has_target = target_column in data.columns
            validation_results.append({
                'check': 'target_column_exists',
                'passed': has_target,
                'message': f"Target column '{target_column}' {'found' if has_target else 'not found'}"
            })

            # 2. Check for minimum number of rows
            min_rows = self.config.MIN_ROWS
            validation_results.append({
                'check': 'minimum_rows',
                'passed': len(data) >= min_rows,
                'message': f"Dataset has {len(data)} rows (minimum: {min_rows})"
            })

            # 3. Check the label
            if has_target:
                validation_results.append(self._validate_target_variable(data[target_column]))

            # 4. At least one feature column besides the label
            n_features = len([c for c in data.columns if c != target_column])
            validation_results.append({
                'check': 'feature_columns',
                'passed': n_features > 0,
                'message': f"Dataset has {n_features} feature columns"
            })

            passed_checks = sum(1 for result in validation_results if result['passed'])
            total_checks = len(validation_results)

            validation_report = {
                'is_valid': passed_checks == total_checks,
                'passed_checks': passed_checks,
                'total_checks': total_checks,
                'results': validation_results,
                'recommendations': self._generate_recommendations(validation_results)
            }

            state.update({
                'validation_report': validation_report,
                'current_step': 'data_validation',
                'next_action': 'proceed' if validation_report['is_valid'] else 'error'
            })

            if not validation_report['is_valid']:
                failed = [r['message'] for r in validation_results if not r['passed']]
                state['errors'].append(f"Data validation failed: {failed}")

            state['execution_log'].append(
                f"Data validation completed: {passed_checks}/{total_checks} checks passed"
            )

            return state

        except Exception as e:
            logger.error(f"Data validation failed: {str(e)}")
            state['errors'].append(f"Data validation error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def _validate_target_variable(self, target_series: pd.Series) -> dict:
        """Validate the label column"""
        missing_pct = target_series.isnull().sum() / len(target_series) * 100 if len(target_series) else 100.0
        n_classes = target_series.nunique()

        if target_series.dtype in ['object', 'category'] or n_classes < 20:
            message = f"Categorical label: {n_classes} classes, {missing_pct:.1f}% missing"
        else:
            message = f"Continuous label: {missing_pct:.1f}% missing"

        return {
            'check': 'target_variable',
            'passed': missing_pct <= self.config.MAX_LABEL_MISSING_PERCENTAGE and n_classes > 0,
            'message': message,
            'details': {
                'name': target_series.name,
                'dtype': str(target_series.dtype),
                'unique_values': int(n_classes),
                'missing_pct': float(missing_pct)
            }
        }

    def _generate_recommendations(self, validation_results: List[dict]) -> List[str]:
        """Generate recommendations based on validation results"""
        recommendations = []

        for result in validation_results:
            if not result['passed']:
                check_type = result['check']

                if check_type == 'target_column_exists':
                    recommendations.append("Verify target column name or provide correct column name")
                elif check_type == 'minimum_rows':
                    recommendations.append("Collect more rows; statistics on small samples are unreliable")
                elif check_type == 'target_variable':
                    recommendations.append("Remove or fill rows with a missing label")
                elif check_type == 'feature_columns':
                    recommendations.append("Provide at least one feature column besides the label")

        return recommendations
