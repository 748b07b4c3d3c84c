from data_designer.plugins.plugin import Plugin, PluginType

essay_score_plugin = Plugin(
    config_qualified_name="data_designer_essay_scorer.config.EssayScoreColumnConfig",
    impl_qualified_name="data_designer_essay_scorer.generator.EssayScoreColumnGenerator",
    plugin_type=PluginType.COLUMN_GENERATOR,
)
