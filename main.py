### FULL PIPELINE ###
# Statewide stream condition random forests: StreamCat covariates -> labeled sites ->
# feature selection -> random forest -> statewide prediction -> condition classes -> validation

# ==============================================================================
# SECTION 1: IMPORTS & CONFIGURATION
# ==============================================================================

# --- 1a. Library Imports ---
import os
import sys
import logging
import argparse
import pandas as pd

# --- 1b. Project Imports ---
from watershed_rf.utils.config_loader import load_project_config, resolve_config_roots, get_index_config
from watershed_rf.utils.run_manifest import save_run_manifest
from watershed_rf.data_ingestion import streamcat_data_ingestion, region_data_ingestion, site_data_ingestion
from watershed_rf.preprocessing import label_binding, data_partitioning, feature_selection
from watershed_rf.training import model_training, model_testing, condition_classification
from watershed_rf.visualisation import model_plots, mapped_visualisations

# --- 1c. Logging Config ---
for handler in logging.root.handlers[:]:
    logging.root.removeHandler(handler)  # Ensure logging config is respected (override any module logs)

logging.basicConfig(
    level=logging.INFO,
    # format='%(levelname)s - %(message)s',  # Uncomment for short logging
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',  # Uncomment for full logging
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

# --- 1d. Load config and resolve root directory paths ---

parser = argparse.ArgumentParser()
parser.add_argument("--config", type=str, default=os.getenv("PROJECT_CONFIG", "config/project_config.yaml"))
parser.add_argument("--indices", type=str, default=os.getenv("INDICES", ""))
args = parser.parse_args()

config = resolve_config_roots(load_project_config(config_path=args.config))
global_paths = config["global"]["paths"]
data_combination = config["global"]["data_combination"]
id_col = data_combination["id_col"]
region_col = data_combination["region_col"]
length_col = data_combination["length_col"]

# --- 1e. Define indices to process ---
pipeline_settings = config["global"]["pipeline_settings"]
indices_to_process = args.indices.split(":") if args.indices else pipeline_settings["indices_to_process"]
run_data_combination = pipeline_settings["run_data_combination"]
run_rfcv = pipeline_settings["run_rfcv"]
run_maps = pipeline_settings["run_maps"]
run_ripram_sites = pipeline_settings.get("run_ripram_sites", False)
n_jobs = pipeline_settings.get("n_jobs")

# Run full pipeline
try:

    # ==============================================================================
    # SECTION 2: DATA COMBINATION
    # ==============================================================================

    # --- 2a. Join StreamCat covariate tables into one wide table ---

    if run_data_combination:
        streamcat_params = streamcat_data_ingestion.build_streamcat_params(
            sources=data_combination["sources"],
            output_path=global_paths["streamcat_params_output"],
            id_col=id_col
        )
    else:
        streamcat_params = pd.read_csv(global_paths["streamcat_params_output"])

    logger.info(f"Pipeline step 'Combine StreamCat Parameters' complete: {len(streamcat_params)} catchments.\n")

    # --- 2b. One region and reach length per catchment ---

    ps6_params = region_data_ingestion.load_region_assignments(
        csv_path=global_paths["ps6_params_input"],
        id_col=id_col,
        region_col=region_col,
        length_col=length_col,
        output_path=global_paths["ps6_params_output"]
    )

    logger.info(f"Pipeline step 'Assign Regions' complete.\n")

    # --- 2c. Catchment IDs for RipRAM sites within 40 m of a flowline ---

    if run_ripram_sites:
        ripram_cfg = config["ripram"]
        site_cfg = ripram_cfg["site_assignment"]
        ripram_sites = site_data_ingestion.build_site_catchments(
            sites_path=ripram_cfg["paths"]["sites_input"],
            flowlines_path=global_paths["flowlines_shapefile"],
            output_path=ripram_cfg["paths"]["sites_output"],
            lon_col=site_cfg["lon_col"],
            lat_col=site_cfg["lat_col"],
            crs=site_cfg["crs"],
            distance=site_cfg["distance"],
            projected_crs=site_cfg["projected_crs"],
            id_col=id_col,
            output_columns=site_cfg.get("output_columns")
        )

        logger.info(f"Pipeline step 'Assign RipRAM Sites' complete: {len(ripram_sites)} site matches.\n")

    for index_name in indices_to_process:
        index_cfg = get_index_config(config, index_name)
        response_col = index_cfg["response_col"]
        predicted_col = model_training.prediction_column(response_col)
        seeds = index_cfg["seeds"]
        output_dir = index_cfg["paths"]["output_dir"]
        os.makedirs(output_dir, exist_ok=True)

        # ==============================================================================
        # SECTION 3: LABEL BINDING
        # ==============================================================================

        # --- 3a. Load measured scores ---

        labels_df = label_binding.load_labeled_observations(
            csv_path=index_cfg["paths"]["labels_input"],
            response_col=response_col,
            rename_map=index_cfg.get("rename_map")
        )

        # --- 3b. Remove covariates left out of this index's model ---

        index_covariates = streamcat_data_ingestion.drop_covariates(
            covariates_df=streamcat_params,
            columns=index_cfg.get("drop_covariates", [])
        )

        # --- 3c. Bind scores to covariates and regions, one row per catchment ---

        bound_df, binding_summary = label_binding.bind_labels(
            labels_df=labels_df,
            covariates_df=index_covariates,
            regions_df=ps6_params,
            response_col=response_col,
            random_seed=seeds["dedup"],
            excluded_stations=index_cfg.get("excluded_stations", []),
            id_col=id_col
        )

        logger.info(f"Pipeline step 'Bind Labels' complete for {index_name}.\n")

        # ==============================================================================
        # SECTION 4: SPLIT & FEATURE SELECTION
        # ==============================================================================

        # --- 4a. Stratified training / testing split ---

        train_df, test_df = data_partitioning.stratified_initial_split(
            df=bound_df,
            random_seed=seeds["split"],
            strata_col=region_col,
            prop=index_cfg["split"]["prop"],
            pool=index_cfg["split"]["pool"],
            id_col=id_col
        )

        candidate_predictors = data_partitioning.predictor_columns(bound_df, response_col)

        # --- 4b. Recursive feature elimination ---

        fs_cfg = index_cfg["feature_selection"]
        rf_cfg = index_cfg["random_forest"]

        rfe_result = feature_selection.recursive_feature_elimination(
            train_df=train_df,
            response_col=response_col,
            predictors=candidate_predictors,
            sizes=fs_cfg["sizes"],
            random_seed=seeds["rfe"],
            n_folds=fs_cfg["n_folds"],
            n_estimators=fs_cfg["n_estimators"],
            importance_type=fs_cfg["importance_type"],
            max_features=rf_cfg["max_features"],
            min_samples_leaf=rf_cfg["min_samples_leaf"],
            n_jobs=n_jobs
        )
        rfe_result.results.to_csv(os.path.join(output_dir, f"{index_name}_rfe_results.csv"), index=False)

        # --- 4c. Smallest model within tolerance of the best ---

        chosen_size = feature_selection.pick_size_tolerance(rfe_result.results, tol=fs_cfg["tolerance"])
        selected_predictors = feature_selection.pick_vars(rfe_result.variables, size=chosen_size)

        model_plots.plot_rfe_profile(
            rfe_results=rfe_result.results,
            chosen_size=chosen_size,
            output_path=os.path.join(output_dir, "figures", f"{index_name}_rfe_profile.png")
        )

        # --- 4d. Cross-validated error as predictors are removed (sanity check) ---

        if run_rfcv:
            rfcv_df = feature_selection.rf_cross_validation(
                train_df=train_df,
                response_col=response_col,
                predictors=candidate_predictors,
                random_seed=seeds["rfe"],
                n_folds=index_cfg["rfcv"]["n_folds"],
                step=index_cfg["rfcv"]["step"],
                n_estimators=fs_cfg["n_estimators"],
                max_features=rf_cfg["max_features"],
                n_jobs=n_jobs
            )
            rfcv_df.to_csv(os.path.join(output_dir, f"{index_name}_rfcv.csv"), index=False)

        logger.info(f"Pipeline step 'Feature Selection' complete for {index_name}.\n")

        # ==============================================================================
        # SECTION 5: TRAINING & PREDICTION
        # ==============================================================================

        # --- 5a. Fit random forest on selected predictors ---

        model = model_training.fit_random_forest(
            train_df=train_df,
            response_col=response_col,
            predictors=selected_predictors,
            random_seed=seeds["forest"],
            n_estimators=rf_cfg["n_estimators"],
            max_features=rf_cfg["max_features"],
            min_samples_leaf=rf_cfg["min_samples_leaf"],
            n_jobs=n_jobs
        )

        importance_df = model_training.variable_importance(model, train_df, response_col, selected_predictors,
                                                           random_seed=seeds["forest"])
        importance_df.to_csv(os.path.join(output_dir, f"{index_name}_importance.csv"), index=False)

        model_plots.plot_variable_importance(
            importance_df=importance_df,
            output_path=os.path.join(output_dir, "figures", f"{index_name}_vip_plot.png")
        )

        model_training.save_model(model, selected_predictors, os.path.join(output_dir, "model"), index_name)

        # --- 5b. Out-of-bag (training) and new data (testing) predictions ---

        train_pred_df = model_training.predict_out_of_bag(model, train_df, response_col)
        test_pred_df = model_training.predict_new_data(model, test_df, selected_predictors, response_col)

        # --- 5c. Statewide predictions ---

        statewide_df, excluded_count = model_training.predict_statewide(
            model=model,
            covariates_df=index_covariates,
            train_df=train_df,
            predictors=selected_predictors,
            response_col=response_col,
            id_col=id_col
        )

        logger.info(f"Pipeline step 'Train and Predict' complete for {index_name}.\n")

        # ==============================================================================
        # SECTION 6: CLASSIFICATION
        # ==============================================================================

        scheme = condition_classification.scheme_from_config(index_name, index_cfg["classification"])

        # Attach region and reach length for export and length summaries
        statewide_df = pd.merge(statewide_df, ps6_params, on=id_col, how='left')
        ca_predictions = condition_classification.classify_predictions(statewide_df, predicted_col, scheme)
        ca_predictions.to_csv(os.path.join(output_dir, f"{index_name}_rf_results.csv"), index=False)

        class_summary = condition_classification.summarise_classes(ca_predictions, regions_df=ps6_params,
                                                                   length_col=length_col, id_col=id_col)
        class_summary.to_csv(os.path.join(output_dir, f"{index_name}_rf_results_summary.csv"), index=False)
        logger.info(f"Condition summary for {index_name}:\n{class_summary.to_string(index=False)}\n")

        logger.info(f"Pipeline step 'Classify Predictions' complete for {index_name}.\n")

        # ==============================================================================
        # SECTION 7: VALIDATION
        # ==============================================================================

        # --- 7a. Linear models of measured vs predicted, statewide and by region ---

        lms_df = model_testing.validate_by_region(
            train_pred_df=train_pred_df,
            test_pred_df=test_pred_df,
            measured_col=response_col,
            predicted_col=predicted_col,
            region_col=region_col
        )
        model_testing.format_p_values(lms_df).to_csv(os.path.join(output_dir, f"{index_name}_lms.csv"), index=False)

        # --- 7b. RMSE of training and testing partitions ---

        rmse = model_testing.rmse_summary(model, train_df, test_df, selected_predictors, response_col)
        pd.DataFrame([rmse]).to_csv(os.path.join(output_dir, f"{index_name}_rmse.csv"), index=False)

        model_plots.plot_validation(
            train_pred_df=train_pred_df,
            test_pred_df=test_pred_df,
            measured_col=response_col,
            predicted_col=predicted_col,
            output_path=os.path.join(output_dir, "figures", f"{index_name}_rfmodel_validation.png"),
            region_col=region_col,
            index_label=index_cfg.get("display_name")
        )

        logger.info(f"Pipeline step 'Validate Model' complete for {index_name}.\n")

        # ==============================================================================
        # SECTION 8: MAPPING & RUN RECORDS
        # ==============================================================================

        # --- 8a. Statewide condition map ---

        if run_maps:
            flowlines_gdf = mapped_visualisations.load_flowlines(global_paths["flowlines_shapefile"], id_col=id_col)
            mapped_gdf = mapped_visualisations.join_predictions_to_flowlines(flowlines_gdf, ca_predictions,
                                                                            id_col=id_col)
            map_cfg = config["global"]["visualisations"]["maps"]
            mapped_visualisations.plot_condition_map(
                mapped_gdf=mapped_gdf,
                class_colours=dict(zip(scheme.labels, index_cfg["classification"]["colours"])),
                static_output_path=os.path.join(output_dir, "figures", f"{index_name}_modeled_CA.png"),
                interactive_output_path=os.path.join(output_dir, "figures", f"{index_name}_modeled_CA.html"),
                esri=map_cfg["esri"],
                esri_attr=map_cfg["esri_attr"],
                title=f"Predicted {index_cfg.get('display_name', index_name)} condition",
                interactive=map_cfg["display_interactive_map"]
            )

            # Watershed insets
            if map_cfg.get("insets"):
                mapped_visualisations.plot_condition_insets(
                    classified_df=ca_predictions,
                    insets=map_cfg["insets"],
                    class_colours=dict(zip(scheme.labels, index_cfg["classification"]["colours"])),
                    output_dir=os.path.join(output_dir, "figures"),
                    index_name=index_name,
                    id_col=id_col
                )

        # --- 8b. Row counts of every stage table ---

        process_summary = pd.DataFrame({
            "Dataframe": ["streamcat_params", "ps6_params", "labels", "bound", "train", "test",
                          "statewide_predictions", "excluded_non_training"],
            "Count": [len(streamcat_params), len(ps6_params), len(labels_df), len(bound_df), len(train_df),
                      len(test_df), len(ca_predictions), excluded_count]
        })
        process_summary.to_csv(os.path.join(output_dir, f"{index_name}_process_summary.csv"), index=False)

        # --- 8c. Run manifest ---

        save_run_manifest(
            run_dir=output_dir,
            index_name=index_name,
            config=config,
            seeds=seeds,
            input_paths={
                "labels": index_cfg["paths"]["labels_input"],
                "ps6_params": global_paths["ps6_params_input"],
                "streamcat_params": global_paths["streamcat_params_output"]
            },
            selected_predictors=selected_predictors,
            train_ids=train_df[id_col],
            test_ids=test_df[id_col],
            binding_summary=binding_summary.to_dict(),
            rmse=rmse
        )

        logger.info(f"Pipeline complete for {index_name}. Outputs in {output_dir}\n")

# If critical pipeline error, exit with an error code
except Exception as e:
    logger.critical(f"An unhandled error occurred during pipeline execution: {e}", exc_info=True)
    sys.exit(1)
